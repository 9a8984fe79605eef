"""
Diagnosis stage.

Builds the triage prompt from an extraction, sends it to the selected
backend, parses the reply (one code-fence repair attempt, nothing more)
and validates it against the Diagnosis contract.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError

from clinical_pipeline.config import Settings
from clinical_pipeline.errors import SchemaViolationError, StageFailure, StageRequestError
from clinical_pipeline.models import DiagnoseRequest, Diagnosis
from clinical_pipeline.services.llm_providers import StructuredCompletionProvider, get_provider
from clinical_pipeline.utils.json_parsing import loads_with_fence_retry
from clinical_pipeline.utils.prompts import load_prompt
from clinical_pipeline.utils.schema_validator import format_pydantic_errors

logger = logging.getLogger(__name__)

STEP = "diagnose"


class DiagnosisService:
    """Extraction -> Diagnosis adapter with a switchable backend."""

    def __init__(
        self,
        settings: Settings,
        providers: Optional[Dict[str, StructuredCompletionProvider]] = None,
    ):
        self.settings = settings
        self._providers: Dict[str, StructuredCompletionProvider] = dict(providers or {})
        self._system_template = load_prompt(settings.prompts_dir, "diagnosis_system.txt")

    def get_backend(self, name: str) -> StructuredCompletionProvider:
        """Return the backend for name, building it on first use."""
        if name not in self._providers:
            self._providers[name] = get_provider(name, self.settings)
        return self._providers[name]

    def build_prompt(self, request: DiagnoseRequest) -> Tuple[str, Dict[str, Any]]:
        locale = request.language or self.settings.default_language
        system = self._system_template.replace("{locale}", locale)
        user = {
            "locale": locale,
            "extraction": request.extraction.model_dump(exclude_none=True),
        }
        return system, user

    async def diagnose(
        self,
        request: Union[DiagnoseRequest, Dict[str, Any]],
        provider: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Produce an orientative diagnosis for an extraction.

        Args:
            request: {"extraction", "language"?, "correlationId"?}
            provider: Backend override; defaults to the configured provider

        Returns:
            Diagnosis dict with differentials/recommendations always present
        """
        try:
            parsed_request = DiagnoseRequest.model_validate(request)
        except ValidationError as e:
            correlation_id = request.get("correlationId") if isinstance(request, dict) else None
            raise StageRequestError(STEP, format_pydantic_errors(e), correlation_id) from e

        correlation_id = parsed_request.correlationId
        backend_name = self.settings.resolve_provider(provider)
        backend = self.get_backend(backend_name)
        system, user = self.build_prompt(parsed_request)

        logger.info(f"[{correlation_id}] Diagnosing with {backend_name}")
        raw = await backend.generate(system, user, temperature=0.2)

        try:
            payload = loads_with_fence_retry(raw)
        except ValueError as e:
            logger.error(f"[{correlation_id}] Unparsable diagnosis output: {raw[:500]}")
            raise StageFailure(STEP, str(e), correlation_id) from e

        try:
            diagnosis = Diagnosis.model_validate(payload)
        except ValidationError as e:
            violations = format_pydantic_errors(e)
            logger.error(f"[{correlation_id}] Diagnosis output failed validation: {violations}")
            raise SchemaViolationError(STEP, violations, correlation_id) from e

        return diagnosis.model_dump()
