from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    CANCELLED = "CANCELLED"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    UNAVAILABLE = "UNAVAILABLE"
    INTERNAL = "INTERNAL"


class LifecycleError(Exception):
    """Base error for dblifecycle."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"


class InvalidArgumentError(LifecycleError, ValueError):
    """Malformed name, bad mask path, mismatched payload or unknown enumeration value."""

    code = ErrorCode.INVALID_ARGUMENT


class MalformedNameError(InvalidArgumentError):
    """Resource name does not follow the collection/id grammar."""


class InvalidExpressionError(InvalidArgumentError):
    """Expression failed to parse; carries the parser diagnostic."""

    def __init__(self, message: str, *, diagnostic: str, position: int | None = None) -> None:
        super().__init__(message, details={"diagnostic": diagnostic, "position": position})
        self.diagnostic = diagnostic
        self.position = position


class NotFoundError(LifecycleError):
    """Resource name resolves but no such resource exists."""

    code = ErrorCode.NOT_FOUND


class AlreadyExistsError(LifecycleError):
    """Create with an id already in use."""

    code = ErrorCode.ALREADY_EXISTS


class PermissionDeniedError(LifecycleError):
    """Caller lacks rights for the verb on the resource."""

    code = ErrorCode.PERMISSION_DENIED


class FailedPreconditionError(LifecycleError):
    """Resource state does not allow the verb."""

    code = ErrorCode.FAILED_PRECONDITION


class OperationCancelledError(LifecycleError):
    """Call context was cancelled before the operation completed."""

    code = ErrorCode.CANCELLED


class DeadlineExceededError(LifecycleError):
    """Call context deadline elapsed before the operation completed."""

    code = ErrorCode.DEADLINE_EXCEEDED


class UnavailableError(LifecycleError):
    """Transport failure; the caller may retry."""

    code = ErrorCode.UNAVAILABLE


class InternalError(LifecycleError):
    """Unexpected server response."""

    code = ErrorCode.INTERNAL


_ERRORS_BY_CODE: dict[ErrorCode, type[LifecycleError]] = {
    ErrorCode.INVALID_ARGUMENT: InvalidArgumentError,
    ErrorCode.NOT_FOUND: NotFoundError,
    ErrorCode.ALREADY_EXISTS: AlreadyExistsError,
    ErrorCode.PERMISSION_DENIED: PermissionDeniedError,
    ErrorCode.FAILED_PRECONDITION: FailedPreconditionError,
    ErrorCode.CANCELLED: OperationCancelledError,
    ErrorCode.DEADLINE_EXCEEDED: DeadlineExceededError,
    ErrorCode.UNAVAILABLE: UnavailableError,
    ErrorCode.INTERNAL: InternalError,
}

# HTTP status fallbacks used when a failure body carries no recognizable code.
_CODES_BY_STATUS: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_ARGUMENT,
    401: ErrorCode.PERMISSION_DENIED,
    403: ErrorCode.PERMISSION_DENIED,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.ALREADY_EXISTS,
    412: ErrorCode.FAILED_PRECONDITION,
    422: ErrorCode.INVALID_ARGUMENT,
    499: ErrorCode.CANCELLED,
    500: ErrorCode.INTERNAL,
    502: ErrorCode.UNAVAILABLE,
    503: ErrorCode.UNAVAILABLE,
    504: ErrorCode.DEADLINE_EXCEEDED,
}

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ALREADY_EXISTS: 409,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.FAILED_PRECONDITION: 412,
    ErrorCode.CANCELLED: 499,
    ErrorCode.DEADLINE_EXCEEDED: 504,
    ErrorCode.UNAVAILABLE: 503,
    ErrorCode.INTERNAL: 500,
}


def error_for_code(code: str | ErrorCode, message: str, details: dict[str, Any] | None = None) -> LifecycleError:
    # Unknown codes are treated as unexpected server responses.
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return InternalError(message, details={"code": str(code), **(details or {})})
    if error_code is ErrorCode.INVALID_ARGUMENT and details and details.get("diagnostic"):
        return InvalidExpressionError(
            message,
            diagnostic=str(details["diagnostic"]),
            position=details.get("position"),
        )
    return _ERRORS_BY_CODE[error_code](message, details=details)


def error_for_status(status_code: int, payload: Any) -> LifecycleError:
    # Prefer the envelope code; fall back to the HTTP status family.
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("code"):
        message = str(error.get("message") or f"Request failed with status {status_code}")
        details = error.get("details") if isinstance(error.get("details"), dict) else None
        return error_for_code(str(error["code"]), message, details)
    code = _CODES_BY_STATUS.get(status_code)
    if code is None:
        code = ErrorCode.UNAVAILABLE if status_code >= 500 else ErrorCode.INTERNAL
    return error_for_code(code, f"Request failed with status {status_code}")
