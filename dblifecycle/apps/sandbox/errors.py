from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dblifecycle.apps.sandbox.response import error_response
from dblifecycle.core.errors import STATUS_BY_CODE, ErrorCode, LifecycleError


logger = logging.getLogger(__name__)

_CODES_BY_HTTP_STATUS: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_ARGUMENT,
    401: ErrorCode.PERMISSION_DENIED,
    403: ErrorCode.PERMISSION_DENIED,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.INVALID_ARGUMENT,
    409: ErrorCode.ALREADY_EXISTS,
}


def _validation_message(errors: list[Any]) -> str:
    # Surface the first failing field; the full list goes into details.
    if not errors:
        return "Validation error"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


async def lifecycle_exception_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    # Domain errors carry their canonical code; the status follows from it.
    payload = error_response(request=request, code=exc.code.value, message=exc.message, details=exc.details)
    return JSONResponse(content=payload, status_code=STATUS_BY_CODE[exc.code])


async def model_validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    payload = error_response(
        request=request,
        code=ErrorCode.INVALID_ARGUMENT.value,
        message=_validation_message(errors),
        details={"errors": errors},
    )
    return JSONResponse(content=payload, status_code=STATUS_BY_CODE[ErrorCode.INVALID_ARGUMENT])


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = list(exc.errors())
    payload = error_response(
        request=request,
        code=ErrorCode.INVALID_ARGUMENT.value,
        message=_validation_message(errors),
        details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
    )
    return JSONResponse(content=payload, status_code=STATUS_BY_CODE[ErrorCode.INVALID_ARGUMENT])


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _CODES_BY_HTTP_STATUS.get(exc.status_code, ErrorCode.INTERNAL)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    payload = error_response(request=request, code=code.value, message=message)
    return JSONResponse(content=payload, status_code=STATUS_BY_CODE[code], headers=exc.headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.exception("sandbox_unhandled_error path=%s", request.url.path)
    payload = error_response(request=request, code=ErrorCode.INTERNAL.value, message="Internal server error")
    return JSONResponse(content=payload, status_code=STATUS_BY_CODE[ErrorCode.INTERNAL])
