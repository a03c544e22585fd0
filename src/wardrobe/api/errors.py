"""
API Error Handler

Standardizes error responses across all API routes:
- one JSON envelope shape for every failure
- error code -> HTTP status mapping
- user-facing messages per code
- logging of every handled error with request context
"""

import json
from collections.abc import Iterable, Mapping
from typing import Any, Optional, TypedDict

from aiohttp import web

from ..common.logger import StructuredLogger
from ..exceptions import ErrorCode, WardrobeError, classify_error

COMPONENT = "ApiErrorHandler"

STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.CONFLICT: 409,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.TIMEOUT: 504,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.INVALID_REQUEST: 400,
}

ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "The provided data is invalid. Please check your input.",
    ErrorCode.NOT_FOUND: "The requested resource was not found.",
    ErrorCode.UNAUTHORIZED: "Authentication is required. Please log in.",
    ErrorCode.FORBIDDEN: "You do not have permission to access this resource.",
    ErrorCode.CONFLICT: "This resource already exists or there is a conflict.",
    ErrorCode.RATE_LIMITED: "Too many requests. Please try again later.",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred. Please try again.",
    ErrorCode.SERVICE_UNAVAILABLE: "The service is temporarily unavailable. Please try again later.",
    ErrorCode.TIMEOUT: "The request took too long. Please try again.",
    ErrorCode.DATABASE_ERROR: "Database error. Please try again.",
    ErrorCode.STORAGE_ERROR: "File storage error. Please try again.",
    ErrorCode.INVALID_REQUEST: "Invalid request. Please check your input.",
}

RETRYABLE_CODES = frozenset(
    {
        ErrorCode.TIMEOUT,
        ErrorCode.SERVICE_UNAVAILABLE,
        ErrorCode.RATE_LIMITED,
        ErrorCode.DATABASE_ERROR,
        ErrorCode.STORAGE_ERROR,
    }
)

# Inverse mapping for statuses coming back from upstream services
_CODES_BY_STATUS: dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    429: ErrorCode.RATE_LIMITED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.TIMEOUT,
}


class ApiErrorBody(TypedDict, total=False):
    code: str
    message: str
    details: dict[str, Any]
    requestId: str


class ApiErrorResponse(TypedDict):
    success: bool  # always False
    error: ApiErrorBody


class ApiSuccessResponse(TypedDict):
    success: bool  # always True
    data: Any


class RequestContext(TypedDict, total=False):
    route: str
    method: str
    user_id: str
    request_id: str


def get_status_code(code: ErrorCode | str) -> int:
    return STATUS_CODES[ErrorCode(code)]


def get_error_code(status: int) -> ErrorCode:
    return _CODES_BY_STATUS.get(status, ErrorCode.INTERNAL_ERROR)


def get_error_message(code: ErrorCode | str) -> str:
    return ERROR_MESSAGES[ErrorCode(code)]


def create_success_response(data: Any) -> ApiSuccessResponse:
    return {"success": True, "data": data}


def _json_default(value: Any) -> str:
    return str(value)


class ApiErrorHandler:
    """Translates anything raised inside a route into the JSON error envelope"""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or StructuredLogger()

    def create_error_response(
        self,
        code: ErrorCode | str,
        custom_message: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> ApiErrorResponse:
        code = ErrorCode(code)
        body: ApiErrorBody = {
            "code": code.value,
            "message": custom_message or get_error_message(code),
        }
        if details is not None:
            body["details"] = dict(details)
        if request_id:
            body["requestId"] = request_id
        return {"success": False, "error": body}

    def json_response(self, payload: Mapping[str, Any], status: int) -> web.Response:
        return web.json_response(
            payload,
            status=status,
            dumps=lambda obj: json.dumps(obj, default=_json_default),
        )

    def handle_error(
        self, error: Any, context: Optional[RequestContext] = None
    ) -> web.Response:
        """
        Log an error and turn it into a JSON error response

        Args:
            error: Anything that was raised or returned as an error
            context: route/method/user_id/request_id of the request

        Returns:
            aiohttp Response carrying the ApiErrorResponse envelope
        """
        context = context or {}
        log_context = {
            "component": COMPONENT,
            "route": context.get("route"),
            "method": context.get("method"),
            "user_id": context.get("user_id"),
            "request_id": context.get("request_id"),
        }
        code = ErrorCode.INTERNAL_ERROR
        details: Optional[dict[str, Any]] = None

        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
            if isinstance(error, Exception):
                classified = classify_error(error)
                code = classified.code
                if isinstance(error, WardrobeError):
                    message = error.message
            self.logger.error(message, error, log_context)
        elif isinstance(error, Mapping) or hasattr(error, "__dict__"):
            raw = dict(error) if isinstance(error, Mapping) else dict(vars(error))
            message = raw.get("message") or "Unknown error"
            details = raw
            self.logger.error(message, {**log_context, "error": details})
        else:
            message = str(error)
            self.logger.error(message, log_context)

        response = self.create_error_response(code, message, details, context.get("request_id"))
        return self.json_response(response, get_status_code(code))

    @staticmethod
    def validate_required(data: Mapping[str, Any], required_fields: Iterable[str]) -> Optional[str]:
        """First missing field message, or None.

        Falsy values (0, False, "") count as missing.
        """
        for field in required_fields:
            if not data.get(field):
                return f"Missing required field: {field}"
        return None

    @staticmethod
    def is_retryable_error(code: ErrorCode | str) -> bool:
        return ErrorCode(code) in RETRYABLE_CODES
