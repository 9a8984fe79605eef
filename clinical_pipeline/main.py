"""
FastAPI application entry point for the clinical pipeline.

Provides REST API for:
- The full pipeline (POST /, POST /pipeline)
- Each stage on its own (POST /transcribe, /transcribe/raw, /extract, /diagnose)
- Health check (GET /health)

Serve with: uvicorn --factory clinical_pipeline.main:create_app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinical_pipeline import __version__
from clinical_pipeline.config import Settings, get_settings
from clinical_pipeline.services import (
    DiagnosisService,
    ExtractionService,
    PipelineOrchestrator,
    TranscriptionService,
)
from clinical_pipeline.utils.logging_setup import setup_logging


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level)
    logger.info("Starting clinical pipeline application...")
    logger.info(
        f"Diagnose provider: {settings.provider}, extraction provider: {settings.extraction_provider}, "
        f"supported languages: {settings.supported_languages}"
    )
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set - Gemini calls will fail")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set - transcription and OpenAI calls will fail")
    yield
    logger.info("Shutting down clinical pipeline application...")


def create_app(
    settings: Optional[Settings] = None,
    transcriber=None,
    extractor=None,
    diagnoser=None,
) -> FastAPI:
    """
    Build the application with its stage adapters.

    Adapters default to the real services; tests pass doubles instead.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Clinical Pipeline",
        description="Transcription -> structured extraction -> orientative diagnosis",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.transcriber = transcriber or TranscriptionService(settings)
    app.state.extractor = extractor or ExtractionService(settings)
    app.state.diagnoser = diagnoser or DiagnosisService(settings)
    app.state.orchestrator = PipelineOrchestrator(
        settings,
        app.state.transcriber,
        app.state.extractor,
        app.state.diagnoser,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # unknown routes and wrong methods both answer 405
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=405, content={"ok": False, "error": "Use POST"})
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.detail})

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "provider": settings.provider,
        }

    from clinical_pipeline.routers import diagnose, extract, pipeline, transcribe
    app.include_router(pipeline.router, tags=["pipeline"])
    app.include_router(transcribe.router, prefix="/transcribe", tags=["transcribe"])
    app.include_router(extract.router, prefix="/extract", tags=["extract"])
    app.include_router(diagnose.router, prefix="/diagnose", tags=["diagnose"])

    return app


if __name__ == "__main__":
    import uvicorn
    setup_logging(get_settings().log_level)
    uvicorn.run(
        "clinical_pipeline.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        reload=get_settings().debug,
    )
