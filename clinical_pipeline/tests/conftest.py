"""Shared fixtures: settings without a .env file and stage adapter doubles."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from clinical_pipeline.config import Settings


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        GEMINI_API_KEY="test-gemini-key",
        OPENAI_API_KEY="test-openai-key",
        PROVIDER="gemini",
        EXTRACTION_PROVIDER="openai",
        DEFAULT_LANGUAGE="es-AR",
    )


@pytest.fixture
def fake_provider():
    """Structured-completion backend double; set generate.return_value per test."""
    provider = MagicMock()
    provider.name = "fake"
    provider.generate = AsyncMock()
    return provider


@pytest.fixture
def transcriber():
    service = MagicMock()
    service.transcribe = AsyncMock()
    service.transcribe_bytes = AsyncMock()
    return service


@pytest.fixture
def extractor():
    service = MagicMock()
    service.extract = AsyncMock()
    return service


@pytest.fixture
def diagnoser():
    service = MagicMock()
    service.diagnose = AsyncMock()
    return service
