"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    uvicorn upload_gateway.main:app --reload

For production:
    gunicorn upload_gateway.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import health, upload
from .config.settings import Settings, get_settings
from .infrastructure.gcs.client import StorageClient, create_storage_client
from .infrastructure.gcs.resolver import resolve_storage_client

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


def build_storage_client(settings: Settings) -> StorageClient:
    """Wire settings into the storage client factory."""
    return create_storage_client(
        config=settings.storage_config(),
        resolve=partial(
            resolve_storage_client,
            settings.environment,
            settings.credential_config(),
        ),
        mock_mode=settings.gcs_mock_mode,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Resolves Google credentials and checks Cloud Storage before the
    first request is accepted. Any failure propagates and aborts
    startup, so a misconfigured deployment never comes up half-working.
    """
    settings: Settings = app.state.settings

    logger.info(
        "Upload Gateway starting",
        extra={
            "version": __version__,
            "environment": settings.environment,
            "mock_mode": settings.gcs_mock_mode,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    if getattr(app.state, "storage", None) is None:
        app.state.storage = build_storage_client(settings)

    try:
        await app.state.storage.initialize()
    except Exception as e:
        logger.error("Failed to initialize Google Cloud Storage", exc_info=e)
        raise

    yield

    # Shutdown: the storage client holds no resources that need closing
    logger.info("Upload Gateway shutting down")


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[StorageClient] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Settings to use; defaults to the cached environment settings
        storage: Pre-built storage client; built from settings at startup if None
    """
    settings = settings or get_settings()

    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Upload gateway for Google Cloud Storage.

        - `POST /upload` or `POST /upload/doc`: upload a file (multipart field `file`)
        - `GET /upload/list`: list stored files
        - `GET /upload/files/{filename}`: download a file
        - `DELETE /upload/{filename}`: delete a file
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        upload.router,
        prefix="/upload",
        tags=["Upload"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Upload Gateway API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "upload_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
