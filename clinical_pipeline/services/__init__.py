"""Stage adapters, structured-completion backends and the pipeline orchestrator."""

from clinical_pipeline.services.diagnosis_service import DiagnosisService
from clinical_pipeline.services.extraction_service import ExtractionService
from clinical_pipeline.services.pipeline_orchestrator import PipelineOrchestrator, PipelineOutcome
from clinical_pipeline.services.transcription_service import TranscriptionResult, TranscriptionService

__all__ = [
    "DiagnosisService",
    "ExtractionService",
    "PipelineOrchestrator",
    "PipelineOutcome",
    "TranscriptionResult",
    "TranscriptionService",
]
