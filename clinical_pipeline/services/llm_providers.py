"""
Structured-completion backends.

Both backends expose the same capability: given a system instruction and a
serializable payload, return raw text that should (but may not) be JSON.
Callers own parsing and validation, so the logic is not duplicated per
backend. Nothing here retries; a failed call fails the stage.

Clients are created lazily so the service can start without credentials.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import google.generativeai as genai
from openai import OpenAI

from clinical_pipeline.config import SUPPORTED_PROVIDERS, Settings
from clinical_pipeline.errors import ProviderError

logger = logging.getLogger(__name__)


def _serialize_payload(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, ensure_ascii=False)


class StructuredCompletionProvider(ABC):
    """Interface shared by the Gemini and OpenAI backends."""

    name: str = ""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        payload: Any,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: float = 0.0,
    ) -> str:
        """
        Produce raw model text for a system instruction and a payload.

        Args:
            system_prompt: Opaque system instruction
            payload: User message; non-string payloads are sent as JSON
            response_schema: Optional JSON schema the output should follow
            temperature: Sampling temperature

        Returns:
            Raw, stripped, non-empty response text
        """


class GeminiProvider(StructuredCompletionProvider):
    """Google Gemini backend (default)."""

    name = "gemini"

    def __init__(self, settings: Settings):
        self.settings = settings
        self.model_name = settings.gemini_model

    def _get_model(self) -> "genai.GenerativeModel":
        if not self.settings.gemini_api_key:
            raise ProviderError(self.name, "Missing GEMINI_API_KEY")
        genai.configure(api_key=self.settings.gemini_api_key)
        return genai.GenerativeModel(self.model_name)

    async def generate(
        self,
        system_prompt: str,
        payload: Any,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: float = 0.0,
    ) -> str:
        model = self._get_model()

        prompt = "\n\n".join([
            f"# System\n{system_prompt}",
            f"# User\n{_serialize_payload(payload)}",
            "# Respond ONLY with valid JSON.",
        ])

        logger.debug(f"Calling Gemini ({self.model_name})")
        response = await model.generate_content_async(
            prompt,
            generation_config=genai.GenerationConfig(
                temperature=temperature,
                response_mime_type="application/json",
            ),
        )

        text = self._extract_response_text(response)
        if not text:
            raise ProviderError(self.name, "Gemini returned an empty response")
        return text

    def _extract_response_text(self, response) -> Optional[str]:
        """Extract text from a Gemini response, falling back to candidate parts."""
        try:
            if response.text:
                return response.text.strip()
        except ValueError:
            # .text raises when the candidate has no simple text part
            pass

        candidates = getattr(response, "candidates", None) or []
        if candidates:
            content = getattr(candidates[0], "content", None)
            parts = getattr(content, "parts", None) or []
            texts = [part.text for part in parts if getattr(part, "text", None)]
            if texts:
                return "\n".join(texts).strip()

        return None


class OpenAIProvider(StructuredCompletionProvider):
    """OpenAI chat-completions backend."""

    name = "openai"

    def __init__(self, settings: Settings, client: Optional[OpenAI] = None):
        self.settings = settings
        self.model_name = settings.openai_model
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise ProviderError(self.name, "Missing OPENAI_API_KEY")
            self._client = OpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def generate(
        self,
        system_prompt: str,
        payload: Any,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: float = 0.0,
    ) -> str:
        client = self._get_client()

        if response_schema:
            schema = {k: v for k, v in response_schema.items() if not k.startswith("$")}
            response_format = {
                "type": "json_schema",
                "json_schema": {
                    "name": response_schema.get("title", "Response"),
                    "schema": schema,
                    "strict": False,
                },
            }
        else:
            response_format = {"type": "json_object"}

        logger.debug(f"Calling OpenAI ({self.model_name})")
        completion = await asyncio.to_thread(
            client.chat.completions.create,
            model=self.model_name,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": _serialize_payload(payload)},
            ],
            response_format=response_format,
        )

        content = None
        if completion and completion.choices:
            content = completion.choices[0].message.content
        if not content or not content.strip():
            raise ProviderError(self.name, "OpenAI returned an empty response")
        return content.strip()


PROVIDERS = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
}


def get_provider(name: str, settings: Settings) -> StructuredCompletionProvider:
    """Build the backend registered under name."""
    key = (name or "").lower()
    if key not in PROVIDERS:
        raise ValueError(
            f"Unknown provider: {name!r} (expected one of {', '.join(SUPPORTED_PROVIDERS)})"
        )
    return PROVIDERS[key](settings)
