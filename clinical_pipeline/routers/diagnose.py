"""
Diagnosis router.

Endpoints:
- POST /diagnose?provider=gemini|openai - {extraction, language?, correlationId?}
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from clinical_pipeline.config import SUPPORTED_PROVIDERS
from clinical_pipeline.errors import EnvelopeValidationError, StageRequestError
from clinical_pipeline.routers.common import read_json_body

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def diagnose(request: Request, provider: Optional[str] = None):
    """Run only the diagnose stage."""
    service = request.app.state.diagnoser

    if provider is not None and provider.lower() not in SUPPORTED_PROVIDERS:
        return JSONResponse(
            status_code=400,
            content={
                "ok": False,
                "error": "BAD_REQUEST",
                "details": [{"path": "provider", "message": f"Unsupported provider: {provider}"}],
            },
        )

    try:
        body = await read_json_body(request)
    except EnvelopeValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "BAD_REQUEST", "details": e.details},
        )

    try:
        data = await service.diagnose(body, provider=provider)
    except StageRequestError as e:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "BAD_REQUEST", "details": e.errors},
        )
    except Exception as e:
        logger.error(f"[diagnose] ERROR: {e}")
        return JSONResponse(status_code=500, content={"ok": False, "error": "INTERNAL_ERROR"})

    correlation_id = body.get("correlationId") if isinstance(body, dict) else None
    return {"ok": True, "correlationId": correlation_id, "data": data}
