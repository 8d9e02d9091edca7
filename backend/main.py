"""FastAPI backend for genstudio: generations, workflows and provider webhooks."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from genstudio import __version__
from genstudio.config import Settings, get_settings
from genstudio.container import build_container
from genstudio.errors import (
    AuthenticationError,
    GenerationError,
    StorageError,
    TransientServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


def error_status(error: GenerationError) -> int:
    """HTTP status for a generation error surfacing at the API."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, StorageError):
        return 500
    if isinstance(error, TransientServiceError):
        return 503
    # Upstream provider problems (including bad credentials) are gateway errors
    return 502


def create_app(settings: Settings | None = None, **container_kw) -> FastAPI:
    settings = settings or get_settings()
    container = build_container(settings, **container_kw)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configured = container.registry.configured()
        logger.info("Providers configured: %s", ", ".join(n for n, ok in configured.items() if ok) or "none")
        summary = await container.poller.resume_pending()
        if summary["started"] or summary["expired"]:
            logger.info("Resumed polling for %d generations, expired %d", summary["started"], summary["expired"])
        yield
        await container.shutdown()

    app = FastAPI(
        title="genstudio API",
        description="Video and image generation across Kling, Veo, Imagen and Gemini.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.container = container

    # -----------------------------------------------------------------------
    # CORS
    # -----------------------------------------------------------------------
    cors_kw: dict = {
        "allow_origins": settings.cors_origin_list,
        "allow_credentials": True,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
        "expose_headers": ["*"],
    }
    logger.info("CORS configured for origins: %s", settings.cors_origin_list)
    if settings.cors_origin_regex:
        logger.info("CORS origin regex: %s", settings.cors_origin_regex)
        cors_kw["allow_origin_regex"] = settings.cors_origin_regex
    app.add_middleware(CORSMiddleware, **cors_kw)

    # -----------------------------------------------------------------------
    # Errors
    # -----------------------------------------------------------------------
    @app.exception_handler(GenerationError)
    async def generation_error_handler(request: Request, exc: GenerationError):
        status_code = error_status(exc)
        if status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        body = {"detail": str(exc), "code": exc.code}
        if isinstance(exc, ValidationError) and exc.field:
            body["field"] = exc.field
        if isinstance(exc, AuthenticationError) and exc.provider:
            body["provider"] = exc.provider
        return JSONResponse(status_code=status_code, content=body)

    # -----------------------------------------------------------------------
    # Health & root
    # -----------------------------------------------------------------------
    class HealthResponse(BaseModel):
        status: str
        data_dir: str
        providers: dict[str, bool]

    @app.get("/health", response_model=HealthResponse)
    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            data_dir=str(settings.data_dir),
            providers=container.registry.configured(),
        )

    @app.get("/api/")
    async def root():
        return {"message": "genstudio API", "version": __version__}

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    from backend.routes import generations, models, webhooks, workflows

    app.include_router(generations.router, prefix="/api", tags=["generations"])
    app.include_router(workflows.router, prefix="/api", tags=["workflows"])
    app.include_router(webhooks.router, prefix="/api", tags=["webhooks"])
    app.include_router(models.router, prefix="/api", tags=["models"])

    app.mount("/uploads", StaticFiles(directory=str(settings.uploads_dir)), name="uploads")
    return app


app = create_app()
