"""
Error taxonomy for the pipeline.

Every failure the pipeline can report maps to one of these classes. The
orchestrator turns them into stage-tagged JSON responses; nothing here knows
about HTTP beyond the status code each failure carries.
"""

from typing import Any, Dict, List, Optional


class PipelineError(Exception):
    """Base class for failures reported by the pipeline."""

    step = "unknown"
    status_code = 500

    def __init__(self, message: str, correlation_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.correlation_id = correlation_id


class EnvelopeValidationError(PipelineError):
    """Request body did not match the declared contract."""

    step = "validation"
    status_code = 400

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []


class UnsupportedLanguageError(PipelineError):
    """Resolved language is outside the supported allow-list."""

    status_code = 400

    def __init__(self, language: str, correlation_id: Optional[str] = None):
        super().__init__("unsupported language", correlation_id)
        self.language = language


class StageFailure(PipelineError):
    """An external capability raised, returned nothing, or returned unusable data."""

    def __init__(self, step: str, message: str, correlation_id: Optional[str] = None):
        super().__init__(message, correlation_id)
        self.step = step


class EmptyTranscriptionError(StageFailure):
    """Transcription finished without producing text."""

    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__("transcribe", "Transcription returned no text", correlation_id)


class StageRequestError(StageFailure):
    """A stage received a malformed request; no model was called."""

    status_code = 400

    def __init__(self, step: str, errors: List[Dict[str, Any]], correlation_id: Optional[str] = None):
        super().__init__(step, f"Bad request for {step} stage", correlation_id)
        self.errors = errors


class SchemaViolationError(StageFailure):
    """Model output failed schema validation after normalization."""

    def __init__(self, step: str, violations: List[Dict[str, Any]], correlation_id: Optional[str] = None):
        summary = "; ".join(
            f"{v.get('path') or '<root>'}: {v.get('message')}" for v in violations[:5]
        )
        super().__init__(step, f"Model output does not match the {step} schema: {summary}", correlation_id)
        self.violations = violations


class ProviderError(Exception):
    """A structured-completion or speech-to-text backend failed or is misconfigured."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider
