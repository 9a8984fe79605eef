"""
Clinical triage pipeline.

This package turns free-text or audio clinical input into a structured
triage summary with three sequential stages:
- Transcription (OpenAI Whisper) for audio input
- Structured extraction with synonym-key normalization and schema repair
- Orientative diagnosis via a switchable Gemini / OpenAI backend
"""

__version__ = "1.0.0"
