"""
Transcription router.

Endpoints:
- POST /transcribe - JSON {audio: {type, value}, ...}; other content types
  are treated as raw audio bytes
- POST /transcribe/raw - Raw audio bytes only
"""

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from clinical_pipeline.errors import EnvelopeValidationError
from clinical_pipeline.models import AudioInput
from clinical_pipeline.routers.common import read_body

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_JSON_MESSAGE = "Invalid JSON: expected audio: { type: 'url'|'base64', value: '...' }"


def _error_message(error: Exception) -> str:
    return str(error) or "Error processing transcription"


@router.post("")
async def transcribe(request: Request):
    """Transcribe a JSON audio reference, or raw bytes for non-JSON bodies."""
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type:
        return await transcribe_raw(request)

    service = request.app.state.transcriber
    try:
        raw = await read_body(request)
    except EnvelopeValidationError as e:
        return JSONResponse(status_code=400, content={"error": e.message})

    try:
        body = json.loads(raw)
        audio_request = AudioInput.model_validate(body)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.warning(f"Bad transcription request: {e}")
        return JSONResponse(status_code=400, content={"error": INVALID_JSON_MESSAGE})

    try:
        result = await service.transcribe(audio_request)
    except Exception as e:
        logger.error(f"[{audio_request.correlationId}] Transcription failed: {e}")
        return JSONResponse(status_code=500, content={"error": _error_message(e)})

    return {
        "text": result.text,
        "language": result.language,
        "correlationId": result.correlation_id,
    }


@router.post("/raw")
async def transcribe_raw(request: Request):
    """Transcribe the request body as audio bytes (Content-Type is the MIME type)."""
    service = request.app.state.transcriber
    try:
        raw = await read_body(request)
    except EnvelopeValidationError as e:
        return JSONResponse(status_code=400, content={"error": e.message})
    if not raw:
        return JSONResponse(
            status_code=400,
            content={"error": "Empty body; send JSON with audio url/base64 or binary audio"},
        )

    mime = request.headers.get("content-type") or "application/octet-stream"
    try:
        result = await service.transcribe_bytes(raw, mime=mime)
    except Exception as e:
        logger.error(f"Raw transcription failed: {e}")
        return JSONResponse(status_code=500, content={"error": _error_message(e)})

    return {"text": result.text}
