"""
FastAPI application factory for Kinesis Console.

This module creates the main FastAPI app with:
- CORS configuration for the frontend
- Stream client lifecycle management
- Error mapping (400 for invalid input, 502 for upstream failures)
- Static file serving for the built frontend
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from ..config import Settings
from ..errors import InvalidArgumentError, UpstreamError
from ..handler import StreamAdminHandler
from ..streams.base import StreamClient, create_stream_client
from .routes import router

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    client: StreamClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Console settings (loaded from environment if not provided)
        client: Stream client to use instead of one built from settings;
            the caller keeps ownership and closes it
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage stream client lifecycle."""
        stream_client = client or create_stream_client(settings)

        await stream_client.connect()
        app.state.stream_client = stream_client
        app.state.settings = settings
        app.state.handler = StreamAdminHandler(
            stream_client,
            default_snapshot_limit=settings.default_snapshot_limit,
        )

        yield

        if client is None:
            await stream_client.close()

    app = FastAPI(
        title="Kinesis Console",
        description="Administrative interface for browsing and managing Kinesis streams.",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidArgumentError)
    async def invalid_argument_handler(request: Request, exc: InvalidArgumentError):
        return JSONResponse(exc.to_dict(), status_code=400)

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        logger.warning(
            f"Upstream error on {request.method} {request.url.path}: {exc.message}",
            extra=exc.details,
        )
        return JSONResponse(exc.to_dict(), status_code=502)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            {
                "error": "Invalid request",
                "error_code": "INVALID_ARGUMENT",
                "details": {"errors": jsonable_errors(exc)},
            },
            status_code=400,
        )

    # API routes
    app.include_router(router, prefix="/api")

    # Health endpoint at root
    @app.get("/health")
    async def health(request: Request):
        stream_client = getattr(request.app.state, "stream_client", None)
        return {
            "status": "healthy",
            "service": "kinesis-console",
            "backend": settings.backend.value,
            "connected": bool(stream_client and stream_client.is_connected),
        }

    # Serve frontend static files
    if settings.static_dir:
        static_dir = Path(settings.static_dir)
        if static_dir.exists():
            app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="frontend")
        else:
            logger.warning(f"Static directory not found, frontend disabled: {static_dir}")

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Reduce validation errors to their location and message."""
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


# Default app instance
app = create_app()
