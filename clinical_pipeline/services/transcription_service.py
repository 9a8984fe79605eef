"""
Transcription stage.

Turns a URL or base64 audio payload (or raw request bytes) into text with
OpenAI Whisper. The detected language is reported as a primary subtag.
"""

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import requests
from openai import OpenAI

from clinical_pipeline.config import Settings
from clinical_pipeline.errors import ProviderError
from clinical_pipeline.models import AudioInput
from clinical_pipeline.utils.language import normalize_language

logger = logging.getLogger(__name__)

DEFAULT_MIME = "application/octet-stream"

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,", re.IGNORECASE)


@dataclass
class AudioPayload:
    """Audio bytes ready for upload."""
    data: bytes
    mime: str = DEFAULT_MIME
    filename: str = "audio"


@dataclass
class TranscriptionResult:
    """Result of one transcription call."""
    text: str
    language: str = ""
    correlation_id: Optional[str] = None
    duration_sec: Optional[float] = None


class TranscriptionService:
    """Speech-to-text adapter backed by the OpenAI audio API."""

    def __init__(self, settings: Settings, client: Optional[OpenAI] = None):
        self.settings = settings
        self.model_name = settings.transcription_model
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise ProviderError("openai", "Missing OPENAI_API_KEY")
            self._client = OpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def transcribe(self, request: AudioInput) -> TranscriptionResult:
        """
        Transcribe a URL or base64 audio payload.

        Args:
            request: Audio input (source, filename, language, hint, correlation id)

        Returns:
            TranscriptionResult; text may be empty if the model heard nothing
        """
        if request.audio.type == "url":
            payload = await asyncio.to_thread(
                self._download, request.audio.value, request.filename
            )
        else:
            payload = self._decode_base64(request.audio.value, request.filename)

        return await self._transcribe_payload(
            payload,
            language=request.language,
            hint=request.hint,
            correlation_id=request.correlationId,
        )

    async def transcribe_bytes(
        self,
        data: bytes,
        mime: Optional[str] = None,
        filename: str = "audio",
        language: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> TranscriptionResult:
        """Transcribe raw audio bytes received as a request body."""
        if not data:
            raise ValueError("Empty or invalid audio")
        payload = AudioPayload(data=data, mime=mime or DEFAULT_MIME, filename=filename)
        return await self._transcribe_payload(payload, language=language, hint=hint)

    def _download(self, url: str, filename: Optional[str] = None) -> AudioPayload:
        """Fetch URL-sourced audio."""
        response = requests.get(url, timeout=self.settings.audio_download_timeout)
        if not response.ok:
            raise ValueError(f"Could not download audio: {response.status_code}")

        mime = response.headers.get("content-type") or DEFAULT_MIME
        last_segment = urlparse(url).path.rsplit("/", 1)[-1]
        return AudioPayload(
            data=response.content,
            mime=mime,
            filename=last_segment or filename or "audio",
        )

    def _decode_base64(self, value: str, filename: Optional[str] = None) -> AudioPayload:
        """Decode a bare base64 string or a data: URL."""
        mime = DEFAULT_MIME
        match = _DATA_URL_RE.match(value)
        if match:
            mime = match.group(1)

        encoded = value.split(",")[-1]
        try:
            data = base64.b64decode(encoded, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Empty or invalid audio") from e

        if not data:
            raise ValueError("Empty or invalid audio")
        return AudioPayload(data=data, mime=mime, filename=filename or "audio")

    async def _transcribe_payload(
        self,
        payload: AudioPayload,
        language: Optional[str] = None,
        hint: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> TranscriptionResult:
        client = self._get_client()
        requested = normalize_language(language)

        params = {
            "model": self.model_name,
            "file": (payload.filename, payload.data, payload.mime),
            "response_format": "verbose_json",
        }
        if requested:
            params["language"] = requested
        if hint:
            params["prompt"] = hint

        logger.info(
            f"[{correlation_id}] Transcribing {len(payload.data)} bytes "
            f"({payload.mime}, language={requested or 'auto'})"
        )
        response = await asyncio.to_thread(client.audio.transcriptions.create, **params)

        detected = normalize_language(getattr(response, "language", None))
        return TranscriptionResult(
            text=getattr(response, "text", "") or "",
            language=detected or requested or "",
            correlation_id=correlation_id,
            duration_sec=getattr(response, "duration", None),
        )
