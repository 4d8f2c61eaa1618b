"""FastAPI application factory and global exception handling."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from summarize_this import __version__ as app_version
from summarize_this.api.routes import router
from summarize_this.config import Settings, get_settings
from summarize_this.errors import PipelineError
from summarize_this.pipeline.coordinator import PipelineCoordinator, build_coordinator

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(settings: Settings) -> None:
    """Install one stream handler on the package logger at the configured level."""
    package_logger = logging.getLogger("summarize_this")
    package_logger.setLevel(settings.log_level.upper())
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)


def _error_response(status_code: int, kind: str, message: str, details: Any = None) -> JSONResponse:
    content = {"error_kind": kind, "message": message}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def create_application(
    settings: Optional[Settings] = None,
    coordinator: Optional[PipelineCoordinator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = settings or get_settings()
    configure_logging(settings)
    coordinator = coordinator or build_coordinator(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await coordinator.start()
        try:
            yield
        finally:
            await coordinator.stop()

    app = FastAPI(
        title=settings.app_name,
        description="Credit-metered text summarization pipeline.",
        version=app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.coordinator = coordinator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PipelineError)
    async def pipeline_exception_handler(
        request: Request, exc: PipelineError
    ) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "loc": list(error.get("loc", ())),
                "msg": error.get("msg", ""),
                "type": error.get("type", ""),
            }
            for error in exc.errors()
        ]
        return _error_response(400, "Validation", "Request validation failed", {"errors": errors})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code == 404:
            kind = "NotFound"
        elif exc.status_code < 500:
            kind = "Validation"
        else:
            kind = "Internal"
        return _error_response(exc.status_code, kind, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error_response(500, "Internal", "Internal server error")

    @app.get("/healthz", tags=["health"])
    async def healthz() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": app_version,
            **coordinator.health(),
        }

    app.include_router(router)
    return app


app = create_application()
