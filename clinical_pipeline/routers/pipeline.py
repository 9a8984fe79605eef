"""
Pipeline router.

Endpoints:
- POST / - Run transcribe -> extract -> diagnose
- POST /pipeline - Same, under an explicit path
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from clinical_pipeline.errors import EnvelopeValidationError
from clinical_pipeline.routers.common import read_json_body
from clinical_pipeline.services.pipeline_orchestrator import failure_outcome

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/")
@router.post("/pipeline")
async def run_pipeline(request: Request):
    """Run the full pipeline; the status code mirrors the outcome."""
    orchestrator = request.app.state.orchestrator

    try:
        body = await read_json_body(request)
    except EnvelopeValidationError as e:
        logger.warning(f"Pipeline body rejected: {e.message}")
        outcome = failure_outcome(e)
    else:
        outcome = await orchestrator.run(body)

    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
