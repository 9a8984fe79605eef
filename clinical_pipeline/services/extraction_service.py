"""
Extraction stage.

Asks a structured-completion backend for the extraction schema, then runs
the model output through the normalizer and schema repair. Output that
still violates the schema is rejected as a whole, never partially used.
"""

import logging
from typing import Any, Dict, Optional

from clinical_pipeline.config import Settings
from clinical_pipeline.errors import SchemaViolationError, StageFailure, StageRequestError
from clinical_pipeline.services.llm_providers import StructuredCompletionProvider, get_provider
from clinical_pipeline.utils.json_parsing import extract_json_object
from clinical_pipeline.utils.output_normalizer import normalize_extraction
from clinical_pipeline.utils.prompts import load_prompt
from clinical_pipeline.utils.schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

STEP = "extract"
REQUEST_SCHEMA = "extraction_request"
OUTPUT_SCHEMA = "extraction"


class ExtractionService:
    """Transcript -> Extraction adapter."""

    def __init__(
        self,
        settings: Settings,
        provider: Optional[StructuredCompletionProvider] = None,
        validator: Optional[SchemaValidator] = None,
    ):
        self.settings = settings
        self.provider = provider or get_provider(settings.extraction_provider, settings)
        self.validator = validator or SchemaValidator()
        self._system_prompt = load_prompt(settings.prompts_dir, "extraction_system.txt")
        self._user_template = load_prompt(settings.prompts_dir, "extraction_user.txt")

    def build_user_message(self, transcript: str, language: str) -> str:
        return (
            self._user_template
            .replace("{locale}", language or self.settings.default_language)
            .replace("{transcript}", transcript)
        )

    async def extract(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Extract structured findings from a transcript.

        Args:
            request: {"transcript", "language", "correlationId"}, all plain strings

        Returns:
            Extraction dict with symptoms/riskFlags always present

        Raises:
            StageRequestError: request does not match the request schema
            StageFailure: model output is not JSON
            SchemaViolationError: model output fails the extraction schema
        """
        correlation_id = request.get("correlationId") if isinstance(request, dict) else None

        request_errors = self.validator.validate(request, REQUEST_SCHEMA)
        if request_errors:
            logger.warning(f"[{correlation_id}] Bad extraction request: {request_errors}")
            raise StageRequestError(STEP, request_errors, correlation_id)

        transcript = request["transcript"]
        language = request["language"]

        logger.info(
            f"[{correlation_id}] Extracting with {self.provider.name} "
            f"({len(transcript)} chars, lang={language})"
        )
        raw = await self.provider.generate(
            self._system_prompt,
            self.build_user_message(transcript, language),
            response_schema=self.validator.load_schema(OUTPUT_SCHEMA),
            temperature=0.0,
        )

        try:
            parsed = extract_json_object(raw)
        except ValueError as e:
            raise StageFailure(STEP, str(e), correlation_id) from e

        normalized = normalize_extraction(parsed)
        data, violations, fixes = self.validator.validate_with_coercion(normalized, OUTPUT_SCHEMA)
        if fixes:
            logger.debug(f"[{correlation_id}] Extraction repairs: {fixes}")
        if violations:
            logger.error(
                f"[{correlation_id}] Extraction output failed schema validation: "
                f"violations={violations} output={parsed}"
            )
            raise SchemaViolationError(STEP, violations, correlation_id)

        return {"symptoms": [], "riskFlags": [], **data}
