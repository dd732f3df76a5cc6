from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dblifecycle.apps.sandbox.errors import (
    http_exception_handler,
    lifecycle_exception_handler,
    model_validation_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from dblifecycle.apps.sandbox.routes import router
from dblifecycle.apps.sandbox.state import SandboxState
from dblifecycle.core.config import Settings, get_settings
from dblifecycle.core.errors import LifecycleError
from dblifecycle.core.logging import configure_logging


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the in-memory management API used for local runs and tests.

    Each app owns a fresh :class:`SandboxState`, so two apps never share
    resources.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title=f"{settings.app_name} sandbox")
    app.state.settings = settings
    app.state.sandbox = SandboxState(settings)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):  # type: ignore[override]
        # Echo the caller's request id on the response, minting one when absent.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(LifecycleError)
    async def _lifecycle_exception_handler(request: Request, exc: LifecycleError):
        return await lifecycle_exception_handler(request, exc)

    @app.exception_handler(ValidationError)
    async def _model_validation_exception_handler(request: Request, exc: ValidationError):
        return await model_validation_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    app.include_router(router, prefix=f"/{settings.api_version}")
    return app
