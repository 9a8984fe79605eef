#!/usr/bin/env python3
"""
Run the clinical pipeline once from the command line.

Usage:
    python scripts/run_pipeline.py --text "Paciente de 34 años con fiebre" [options]
    python scripts/run_pipeline.py --audio-file consult.m4a [options]
    python scripts/run_pipeline.py --audio-url https://example.org/consult.mp3 [options]

Options:
    --language TAG        Locale tag, e.g. es-AR (default: configured default)
    --provider NAME       Diagnose backend: gemini or openai
    --correlation-id ID   Correlation id to thread through the stages
    --hint TEXT           Transcription prompt hint (audio only)
    --log-level LEVEL     Logging level (DEBUG, INFO, WARNING, ERROR)

Prints the JSON response and exits non-zero when the pipeline fails.
"""

import argparse
import asyncio
import base64
import json
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from clinical_pipeline.config import SUPPORTED_PROVIDERS, get_settings
from clinical_pipeline.services import (
    DiagnosisService,
    ExtractionService,
    PipelineOrchestrator,
    TranscriptionService,
)
from clinical_pipeline.utils.logging_setup import setup_logging


def build_body(args: argparse.Namespace) -> dict:
    """Build the pipeline request body from CLI arguments."""
    if args.text:
        pipeline_input = {"text": args.text}
    else:
        if args.audio_file:
            audio_path = Path(args.audio_file)
            encoded = base64.b64encode(audio_path.read_bytes()).decode("ascii")
            pipeline_input = {
                "audio": {"type": "base64", "value": encoded},
                "filename": audio_path.name,
            }
        else:
            pipeline_input = {"audio": {"type": "url", "value": args.audio_url}}
        if args.hint:
            pipeline_input["hint"] = args.hint

    if args.language:
        pipeline_input["language"] = args.language
    if args.correlation_id:
        pipeline_input["correlationId"] = args.correlation_id

    body = {"input": pipeline_input}
    if args.provider:
        body["options"] = {"provider": args.provider}
    return body


async def run(body: dict) -> dict:
    settings = get_settings()
    orchestrator = PipelineOrchestrator(
        settings,
        TranscriptionService(settings),
        ExtractionService(settings),
        DiagnosisService(settings),
    )
    outcome = await orchestrator.run(body)
    return {"status": outcome.status_code, **outcome.body}


def main():
    parser = argparse.ArgumentParser(description="Run the clinical triage pipeline once")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Clinical free text")
    source.add_argument("--audio-file", help="Path to an audio file")
    source.add_argument("--audio-url", help="URL of an audio file")
    parser.add_argument("--language", help="Locale tag, e.g. es-AR")
    parser.add_argument("--provider", choices=SUPPORTED_PROVIDERS, help="Diagnose backend")
    parser.add_argument("--correlation-id", help="Correlation id")
    parser.add_argument("--hint", help="Transcription prompt hint")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    args = parser.parse_args()

    setup_logging(args.log_level)

    result = asyncio.run(run(build_body(args)))
    print(json.dumps(result, indent=2, ensure_ascii=False))
    sys.exit(0 if result.get("ok") else 1)


if __name__ == "__main__":
    main()
