"""
Custom exceptions for the wardrobe resilience core
Every failure gets a stable ErrorCode and a retryability verdict at its origin
"""

import asyncio
from enum import Enum
from typing import Any, Optional

import aiohttp
import psycopg2
import requests


class ErrorCode(str, Enum):
    """Closed set of error codes exposed at the API boundary"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    DATABASE_ERROR = "DATABASE_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"


class WardrobeError(Exception):
    """Base exception for every classified failure"""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        """
        Args:
            message: Error message
            context: Extra context (url, table, operation, etc.)
            original_error: The exception this one was classified from
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
            "original_error": str(self.original_error) if self.original_error else None,
        }


class ValidationError(WardrobeError):
    """Input failed validation (missing or malformed fields)"""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        context = context or {}
        if field:
            context["field"] = field
        self.field = field
        super().__init__(message, context=context, original_error=original_error)


class InvalidRequestError(WardrobeError):
    code = ErrorCode.INVALID_REQUEST


class NotFoundError(WardrobeError):
    code = ErrorCode.NOT_FOUND


class UnauthorizedError(WardrobeError):
    code = ErrorCode.UNAUTHORIZED


class ForbiddenError(WardrobeError):
    code = ErrorCode.FORBIDDEN


class ConflictError(WardrobeError):
    code = ErrorCode.CONFLICT


class RateLimitError(WardrobeError):
    """Upstream rate limit exceeded"""

    code = ErrorCode.RATE_LIMITED
    retryable = True

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        context = context or {}
        if retry_after is not None:
            context["retry_after"] = retry_after
        self.retry_after = retry_after
        super().__init__(message, context=context, original_error=original_error)


class ServiceUnavailableError(WardrobeError):
    code = ErrorCode.SERVICE_UNAVAILABLE
    retryable = True


class CircuitOpenError(ServiceUnavailableError):
    """Call rejected because the dependency's circuit is open"""

    def __init__(self, name: str, retry_in_ms: float):
        self.name = name
        self.retry_in_ms = retry_in_ms
        super().__init__(
            f"CircuitBreaker {name} is OPEN. Retrying in {round(retry_in_ms)}ms",
            context={"circuit": name, "retry_in_ms": round(retry_in_ms)},
        )


class OperationTimeoutError(WardrobeError, TimeoutError):
    """An operation ran past its deadline"""

    code = ErrorCode.TIMEOUT
    retryable = True

    def __init__(
        self,
        message: str,
        timeout_ms: Optional[float] = None,
        operation: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        context = context or {}
        if timeout_ms is not None:
            context["timeout_ms"] = timeout_ms
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context, original_error=original_error)


class NetworkError(WardrobeError):
    """Network failure talking to a third-party service (retailer, CDN, API)"""

    code = ErrorCode.SERVICE_UNAVAILABLE
    retryable = True

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        context = context or {}
        if url:
            context["url"] = url
        if status_code:
            context["status_code"] = status_code
        self.status_code = status_code
        super().__init__(message, context=context, original_error=original_error)


class DatabaseError(WardrobeError):
    code = ErrorCode.DATABASE_ERROR
    retryable = True


class ConnectionLostError(DatabaseError):
    """Database connection refused, closed or in recovery"""


class ConstraintViolationError(DatabaseError):
    """Write rejected by a NOT NULL / UNIQUE / FOREIGN KEY / CHECK constraint"""

    code = ErrorCode.CONFLICT
    retryable = False

    def __init__(
        self,
        message: str,
        constraint: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        context = context or {}
        if constraint:
            context["constraint"] = constraint
        if field:
            context["field"] = field
        self.constraint = constraint
        self.field = field
        super().__init__(message, context=context, original_error=original_error)


class StorageError(WardrobeError):
    """File/image storage failure"""

    code = ErrorCode.STORAGE_ERROR
    retryable = True


class ConfigurationError(WardrobeError):
    """Missing or invalid configuration value"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        self.config_key = config_key
        super().__init__(message, context=context, original_error=original_error)


# Postgres SQLSTATE codes
PG_INSUFFICIENT_PRIVILEGE = "42501"
PG_NOT_NULL_VIOLATION = "23502"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_UNIQUE_VIOLATION = "23505"
PG_CHECK_VIOLATION = "23514"
PG_CONNECTION_FAILURE = "08006"
PG_TOO_MANY_CONNECTIONS = "53300"
PG_CANNOT_CONNECT_NOW = "57P03"
PG_QUERY_CANCELED = "57014"

_NETWORK_PATTERNS = (
    "timeout",
    "timed out",
    "etimedout",
    "econnrefused",
    "econnreset",
    "enotfound",
    "socket hang up",
    "connection refused",
    "connection reset",
)

_TRANSIENT_DB_PATTERNS = ("database", "connection", "unavailable", "temporarily")

# Upstream HTTP statuses with a dedicated error; other 5xx are NetworkError,
# other 4xx InvalidRequestError
_ERRORS_BY_STATUS: dict[int, type[WardrobeError]] = {
    400: ValidationError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    429: RateLimitError,
    503: ServiceUnavailableError,
    504: OperationTimeoutError,
}


def error_code_of(error: BaseException) -> Any:
    """The driver/HTTP code carried by an untyped exception, if any"""
    pgcode = getattr(error, "pgcode", None)
    if pgcode:
        return pgcode
    return getattr(error, "code", None)


def exception_for_sqlstate(
    code: str,
    message: str,
    constraint: Optional[str] = None,
    original_error: Optional[BaseException] = None,
) -> WardrobeError:
    """Map a Postgres SQLSTATE to the typed hierarchy"""
    code = (code or "").upper()
    context = {"sqlstate": code} if code else {}
    if code == PG_INSUFFICIENT_PRIVILEGE or "RLS" in message:
        return ForbiddenError(message, context=context, original_error=original_error)
    if code.startswith("23"):
        return ConstraintViolationError(
            message, constraint=constraint, context=context, original_error=original_error
        )
    if code in (PG_CONNECTION_FAILURE, PG_CANNOT_CONNECT_NOW) or code.startswith("08"):
        return ConnectionLostError(message, context=context, original_error=original_error)
    if code == PG_QUERY_CANCELED:
        return OperationTimeoutError(message, context=context, original_error=original_error)
    return DatabaseError(message, context=context, original_error=original_error)


def _from_response_status(
    error: aiohttp.ClientResponseError, message: str, context: dict[str, Any]
) -> WardrobeError:
    """Typed error for an upstream HTTP response; only 429 and 5xx are retryable"""
    status = error.status
    url = str(error.request_info.real_url) if error.request_info else None
    error_class = _ERRORS_BY_STATUS.get(status)
    if error_class is None and status >= 500:
        return NetworkError(message, url=url, status_code=status, context=context, original_error=error)

    if url:
        context["url"] = url
    context["status_code"] = status
    if error_class is not None:
        return error_class(message, context=context, original_error=error)
    return InvalidRequestError(message, context=context, original_error=error)


def _from_psycopg2(
    error: psycopg2.Error, message: str, context: Optional[dict[str, Any]] = None
) -> WardrobeError:
    """Typed error for a driver exception, by SQLSTATE when the server sent one"""
    if error.pgcode:
        typed = exception_for_sqlstate(
            error.pgcode, message, constraint=_constraint_of(error), original_error=error
        )
        typed.context.update(context or {})
        return typed
    if isinstance(error, psycopg2.IntegrityError):
        return ConstraintViolationError(message, context=context, original_error=error)
    if isinstance(error, psycopg2.OperationalError):
        return ConnectionLostError(message, context=context, original_error=error)
    return DatabaseError(message, context=context, original_error=error)


def _constraint_of(error: psycopg2.Error) -> Optional[str]:
    try:
        return error.diag.constraint_name
    except Exception:
        return None


def is_transient(error: BaseException) -> bool:
    """Whether retrying the failed call may succeed.

    Typed errors answer for themselves; library exceptions are judged by type
    (and SQLSTATE or HTTP status); anything else falls back to the
    message/code heuristics.
    """
    if isinstance(error, WardrobeError):
        return error.retryable
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status == 429 or error.status >= 500
    if isinstance(error, (aiohttp.ClientConnectionError, requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(error, psycopg2.Error):
        return _from_psycopg2(error, str(error)).retryable
    if not isinstance(error, Exception):
        return False

    message = str(error).lower()
    code = error_code_of(error)

    if any(pattern in message for pattern in _NETWORK_PATTERNS):
        return True

    if code == 429 or "rate limit" in message:
        return True

    # Server errors; codes outside the HTTP range count as malformed
    if isinstance(code, int) and not isinstance(code, bool) and code and (code >= 500 or code < 100):
        return True

    if any(pattern in message for pattern in _TRANSIENT_DB_PATTERNS):
        return True
    return code in (PG_CONNECTION_FAILURE, PG_CANNOT_CONNECT_NOW)


def classify_error(error: BaseException, context: Optional[dict[str, Any]] = None) -> WardrobeError:
    """
    Turn an untyped exception into a WardrobeError

    Args:
        error: The raw exception
        context: Extra context attached to the result

    Returns:
        WardrobeError instance (typed errors pass through unchanged)
    """
    if isinstance(error, WardrobeError):
        return error

    context = dict(context or {})
    message = str(error) or type(error).__name__

    # Library exceptions, by type
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, requests.Timeout)):
        return OperationTimeoutError(message, context=context, original_error=error)
    if isinstance(error, aiohttp.ClientResponseError):
        return _from_response_status(error, message, context)
    if isinstance(error, (ConnectionError, aiohttp.ClientConnectionError, requests.ConnectionError)):
        return NetworkError(message, context=context, original_error=error)
    if isinstance(error, psycopg2.Error):
        return _from_psycopg2(error, message, context)

    # Fallback: message sniffing for anything left untyped
    lowered = message.lower()
    if "validation" in lowered or "invalid" in lowered:
        return ValidationError(message, context=context, original_error=error)
    if "not found" in lowered:
        return NotFoundError(message, context=context, original_error=error)
    if "unauthorized" in lowered:
        return UnauthorizedError(message, context=context, original_error=error)
    if "permission" in lowered:
        return ForbiddenError(message, context=context, original_error=error)
    if "timeout" in lowered or "timed out" in lowered:
        return OperationTimeoutError(message, context=context, original_error=error)
    if "database" in lowered:
        return DatabaseError(message, context=context, original_error=error)

    return WardrobeError(message, context=context, original_error=error)
