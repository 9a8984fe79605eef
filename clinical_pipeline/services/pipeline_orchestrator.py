"""
Pipeline orchestrator for transcript -> extraction -> diagnosis.

Execution flow:
1. Validate the request envelope (no side effects before this)
2. Text input: use it as the transcript. Audio input: transcribe it
3. Gate on the resolved language (primary subtag must be supported)
4. Extract structured findings
5. Diagnose from the extraction
6. Assemble the response with per-stage timings

Stages run strictly in sequence and nothing is retried: the first failure
ends the request. Every failure leaves as a stage-tagged response; no
exception reaches the transport layer.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from clinical_pipeline.config import Settings
from clinical_pipeline.errors import (
    EmptyTranscriptionError,
    EnvelopeValidationError,
    PipelineError,
    StageFailure,
    UnsupportedLanguageError,
)
from clinical_pipeline.models import AudioInput, PipelineRequest, TextInput, validation_issues
from clinical_pipeline.utils.language import is_supported

logger = logging.getLogger(__name__)


def generate_correlation_id() -> str:
    """corr-<epoch millis>-<random suffix>."""
    return f"corr-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


@dataclass
class PipelineOutcome:
    """Status code and JSON body of one pipeline run."""
    status_code: int
    body: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return bool(self.body.get("ok"))


def failure_outcome(error: PipelineError, correlation_id: Optional[str] = None) -> PipelineOutcome:
    """Map a pipeline error onto its public response shape."""
    if error.correlation_id is not None:
        correlation_id = error.correlation_id

    if isinstance(error, EnvelopeValidationError):
        return PipelineOutcome(400, {
            "ok": False,
            "step": "validation",
            "error": error.message,
            "details": error.details,
        })

    if isinstance(error, UnsupportedLanguageError):
        return PipelineOutcome(400, {
            "ok": False,
            "error": error.message,
            "correlationId": correlation_id,
        })

    body = {"ok": False, "step": error.step, "error": error.message}
    if correlation_id is not None:
        body["correlationId"] = correlation_id
    return PipelineOutcome(error.status_code, body)


def _elapsed_ms(start: float, clock: Callable[[], float]) -> int:
    return max(0, int(round((clock() - start) * 1000)))


class PipelineOrchestrator:
    """
    Orchestrates the three stages for one request at a time.

    Stage adapters are injected; the orchestrator only relies on:
    - transcriber.transcribe(AudioInput) -> object with .text and .language
    - extractor.extract(dict) -> dict
    - diagnoser.diagnose(dict, provider=...) -> dict
    """

    def __init__(
        self,
        settings: Settings,
        transcriber,
        extractor,
        diagnoser,
        id_factory: Callable[[], str] = generate_correlation_id,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.settings = settings
        self.transcriber = transcriber
        self.extractor = extractor
        self.diagnoser = diagnoser
        self.id_factory = id_factory
        self.clock = clock

    def parse_request(self, raw_body: Any) -> PipelineRequest:
        """Validate the envelope; raises EnvelopeValidationError with an issue list."""
        try:
            return PipelineRequest.model_validate(raw_body)
        except ValidationError as e:
            raise EnvelopeValidationError("Invalid request body", validation_issues(e)) from e

    async def run(self, raw_body: Any) -> PipelineOutcome:
        """
        Run the full pipeline for one request body.

        Args:
            raw_body: Decoded JSON body ({"input": ..., "options"?: ...})

        Returns:
            PipelineOutcome with the HTTP status and response body
        """
        try:
            request = self.parse_request(raw_body)
        except EnvelopeValidationError as e:
            logger.warning(f"Pipeline request rejected: {len(e.details)} validation issue(s)")
            return failure_outcome(e)

        provider = self.settings.resolve_provider(
            request.options.provider if request.options else None
        )
        started = self.clock()
        correlation_id = request.input.correlationId
        if correlation_id is None:
            correlation_id = self.id_factory()

        try:
            # ---- Step 1: transcript ----
            t1 = self.clock()
            transcript, language = await self._resolve_transcript(request.input, correlation_id)
            transcribe_ms = _elapsed_ms(t1, self.clock)

            if not is_supported(language, self.settings.supported_languages):
                raise UnsupportedLanguageError(language, correlation_id)

            # ---- Step 2: extract ----
            t2 = self.clock()
            logger.info(f"[{correlation_id}] Stage extract started (lang={language})")
            extracted = await self.extractor.extract({
                "transcript": transcript,
                "language": language,
                "correlationId": correlation_id,
            })
            extract_ms = _elapsed_ms(t2, self.clock)

            # ---- Step 3: diagnose ----
            t3 = self.clock()
            logger.info(f"[{correlation_id}] Stage diagnose started (provider={provider})")
            diagnosis = await self.diagnoser.diagnose(
                {
                    "extraction": self._project_extraction(extracted),
                    "language": language,
                    "correlationId": correlation_id,
                },
                provider=provider,
            )
            diagnose_ms = _elapsed_ms(t3, self.clock)

        except UnsupportedLanguageError as e:
            logger.warning(f"[{correlation_id}] Unsupported language: {e.language!r}")
            return failure_outcome(e, correlation_id)
        except EmptyTranscriptionError as e:
            logger.error(f"[{correlation_id}] {e.message}")
            return failure_outcome(e, correlation_id)
        except Exception as e:
            stage = e.step if isinstance(e, StageFailure) else "internal"
            logger.exception(f"[{correlation_id}] Pipeline failed at {stage}: {e}")
            return PipelineOutcome(500, {
                "ok": False,
                "step": "unknown",
                "error": str(e) or "Unexpected error",
                "correlationId": correlation_id,
            })

        total_ms = _elapsed_ms(started, self.clock)
        logger.info(
            f"[{correlation_id}] Pipeline completed in {total_ms}ms "
            f"(transcribe={transcribe_ms}, extract={extract_ms}, diagnose={diagnose_ms})"
        )

        return PipelineOutcome(200, {
            "ok": True,
            "pipeline": {
                "timingsMs": {
                    "transcribe": transcribe_ms,
                    "extract": extract_ms,
                    "diagnose": diagnose_ms,
                    "total": total_ms,
                },
            },
            "transcript": transcript,
            "extracted": extracted,
            "diagnosis": diagnosis,
            "correlationId": correlation_id,
            "provider": provider,
        })

    async def _resolve_transcript(self, pipeline_input, correlation_id: str) -> Tuple[str, str]:
        """Return (transcript, language) for either input shape."""
        # an explicit empty language is kept so the gate rejects it
        requested = getattr(pipeline_input, "language", None)
        if requested is None:
            requested = self.settings.default_language

        if isinstance(pipeline_input, TextInput):
            return pipeline_input.text, requested

        if isinstance(pipeline_input, AudioInput):
            logger.info(f"[{correlation_id}] Stage transcribe started ({pipeline_input.audio.type})")
            result = await self.transcriber.transcribe(
                pipeline_input.model_copy(update={"correlationId": correlation_id})
            )
            if not result or not result.text:
                raise EmptyTranscriptionError(correlation_id)
            # detected language first, then the caller's, then the default
            return result.text, result.language or requested

        raise TypeError(f"Unhandled pipeline input: {type(pipeline_input).__name__}")

    @staticmethod
    def _project_extraction(extracted: Dict[str, Any]) -> Dict[str, Any]:
        """Diagnose-stage view of an extraction; list fields are never None."""
        return {
            "patient": extracted.get("patient"),
            "symptoms": extracted.get("symptoms") or [],
            "riskFlags": extracted.get("riskFlags") or [],
            "onsetDays": extracted.get("onsetDays"),
            "notes": extracted.get("notes"),
        }
