"""
Extraction router.

Endpoints:
- POST /extract - {transcript, language, correlationId} -> extraction data
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from clinical_pipeline.errors import EnvelopeValidationError, StageRequestError
from clinical_pipeline.routers.common import read_json_body

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def extract(request: Request):
    """Run only the extract stage."""
    service = request.app.state.extractor

    try:
        body = await read_json_body(request)
    except EnvelopeValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "BAD_REQUEST", "details": e.details},
        )

    correlation_id = body.get("correlationId") if isinstance(body, dict) else None
    try:
        data = await service.extract(body)
    except StageRequestError as e:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "BAD_REQUEST", "details": e.errors},
        )
    except Exception as e:
        logger.error(f"[{correlation_id}] /extract INTERNAL_ERROR: {e}")
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "INTERNAL_ERROR", "correlationId": correlation_id},
        )

    return {"ok": True, "correlationId": correlation_id, "data": data}
