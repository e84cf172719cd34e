from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
import logging

from app.config import settings

from app.routers import analyze, feedback, health, search
from app.core.database import init_db, close_db
from app.core.structured_logging import setup_logging, APP_VERSION
from app.core.errors import FeedbackIntelError
from app.core.errors.registry import error_registry
from app.core.errors.middleware import (
    feedback_error_handler,
    unhandled_error_handler,
    validation_error_handler,
)
from app.core.log_middleware import CorrelationMiddleware
from app.services.qdrant_service import get_vector_index

setup_logging(settings.log_directory)

logger = logging.getLogger(__name__)

API_TITLE = "Feedback Intelligence API"
API_VERSION = APP_VERSION
API_PREFIX = "/api"
ROUTERS = (health, feedback, search, analyze)

API_DESCRIPTION = """
## Feedback Intelligence - Intake, Analysis & Search

Submit customer feedback, let the background pipeline classify and embed it,
then search it by meaning (with keyword fallback) or ask for a PM-style analysis.

### Quick Start
1. `POST /api/feedback` with `{"text": "...", "source": "github"}`
2. Poll `GET /api/feedback/{id}` until `status` is `COMPLETED`
3. `GET /api/search?q=login problems`
"""

TAGS_METADATA = [
    {
        "name": "health",
        "description": "Health check and readiness endpoints for monitoring.",
    },
    {
        "name": "feedback",
        "description": "Feedback intake (202 + background analysis pipeline) and listing.",
    },
    {
        "name": "search",
        "description": "Semantic search over analyzed feedback with keyword fallback and per-result relevance.",
    },
    {
        "name": "analyze",
        "description": "Sentiment/urgency stats, intent filtering and optional LLM insights.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the error registry and migrate the database before serving."""
    logger.info("app_starting", extra={"version": API_VERSION})
    error_registry.load()
    init_db()
    try:
        yield
    finally:
        get_vector_index().close()
        close_db()
        logger.info("app_stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(FeedbackIntelError, feedback_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    for module in ROUTERS:
        tag = module.__name__.rsplit(".", 1)[-1]
        app.include_router(module.router, prefix=API_PREFIX, tags=[tag])

    @app.get("/", tags=["health"], summary="API root")
    async def root():
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "status": "running",
            "docs": {
                "swagger": "/docs",
                "redoc": "/redoc",
                "openapi": "/openapi.json",
            },
        }

    return app


app = create_app()
