"""
FastAPI application factory for the feedback service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from userfeedback.config import Settings, get_settings
from userfeedback.dependencies import FeedbackServices, build_services
from userfeedback.errors import EmptyInputError, FeedbackServiceError, ValidationError
from userfeedback.routes import router

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, details) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "error": error, "details": details},
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Report malformed requests as 400 rather than FastAPI's 422."""
        details = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
            details.append({"field": field, "message": error["msg"]})
        logger.warning("Rejected request to %s: %s", request.url.path, details)
        return _error_response(400, "Validation error", details)

    @app.exception_handler(ValidationError)
    @app.exception_handler(EmptyInputError)
    async def bad_input_handler(request: Request, exc: FeedbackServiceError):
        logger.warning("Rejected request to %s: %s", request.url.path, exc.message)
        return _error_response(400, exc.message, exc.details)

    @app.exception_handler(FeedbackServiceError)
    async def service_error_handler(request: Request, exc: FeedbackServiceError):
        logger.error(
            "Request to %s failed [%s]: %s", request.url.path, exc.error_code, exc.message
        )
        return _error_response(500, exc.message, {"code": exc.error_code})


def mount_static_pages(app: FastAPI, static_dir: str) -> None:
    root = Path(static_dir)
    for name in ("upload", "query"):
        directory = root / name
        if directory.is_dir():
            app.mount(f"/{name}", StaticFiles(directory=directory, html=True), name=name)
        else:
            logger.warning("Static directory %s not found; /%s not served", directory, name)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[FeedbackServices] = None,
) -> FastAPI:
    settings = settings or get_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        services.store.close()

    app = FastAPI(title="User Feedback Backend", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.include_router(router, prefix=settings.api_prefix)
    register_exception_handlers(app)
    if settings.static_dir:
        mount_static_pages(app, settings.static_dir)
    return app
