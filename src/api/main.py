"""
Governed RAG FastAPI Application
================================

Thin HTTP adapter over the governed RAG pipeline.

Endpoints:
    GET  /api/health                     - Health check
    POST /api/chat                       - Governed chat turn
    POST /api/chat/document              - One-shot chat over an uploaded document
    POST /api/rag/retrieve               - Retrieval without a chat turn
    POST /api/documents/{id}/process     - Queue ingestion
    POST /api/documents/{id}/reprocess   - New version, queue ingestion

Usage:
    uvicorn src.api.main:app --reload --port 8000

    Or with CLI:
    python -m src.api.main
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import os
from typing import Optional

from ..core.config import get_settings
from ..core.errors import (
    AgentNotFoundError,
    CompletionProviderError,
    DocumentNotFoundError,
    ValidationError,
)
from ..core.logging_config import setup_logging
from .chat_routes import router as chat_router
from .models import HealthResponse
from .rag_routes import router as rag_router
from .services import RAGServices, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services on start-up unless injected, run the worker, clean up on exit."""
    owned = app.state.services is None
    if owned:
        settings = get_settings()
        setup_logging(
            level=settings.logging.level,
            json_output=settings.logging.json_logs,
            log_file=settings.logging.log_file,
        )
        logger.info("Starting governed RAG API...")
        app.state.services = build_services(settings)
        app.state.services.worker.start()

    yield

    if owned:
        app.state.services.close()
        app.state.services = None
        logger.info("Shutting down governed RAG API...")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


def create_app(services: Optional[RAGServices] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Pre-built services (tests); built from settings at start-up otherwise
    """
    app = FastAPI(
        title="Governed RAG API",
        description="Retrieval-augmented chat with governance and audit logging",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS configuration
    # In production, set CORS_ORIGINS env var (comma-separated)
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    extra_origins = os.getenv("CORS_ORIGINS", "")
    if extra_origins:
        origins.extend([o.strip() for o in extra_origins.split(",") if o.strip()])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(rag_router)

    @app.exception_handler(AgentNotFoundError)
    async def agent_not_found(request: Request, exc: AgentNotFoundError):
        return _error(404, exc.message)

    @app.exception_handler(DocumentNotFoundError)
    async def document_not_found(request: Request, exc: DocumentNotFoundError):
        return _error(404, exc.message)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return _error(400, exc.message)

    @app.exception_handler(CompletionProviderError)
    async def provider_error(request: Request, exc: CompletionProviderError):
        logger.error(f"Completion provider failure on {request.url.path}: {exc.message}")
        return _error(502, exc.message)

    @app.get("/api/health", response_model=HealthResponse)
    def health_check(request: Request):
        """Service status, vector index availability and worker counters."""
        current = request.app.state.services
        return HealthResponse(
            status="healthy",
            version=app.version,
            vector_index=current.store.supports_vector_index(),
            worker=current.worker.stats,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    print("=" * 60)
    print("Governed RAG API")
    print("=" * 60)
    print("  - Swagger UI: http://localhost:8000/docs")
    print("=" * 60)

    uvicorn.run(
        "src.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
