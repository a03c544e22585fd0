"""
API boundary - JSON error envelope
"""

from .errors import (
    ERROR_MESSAGES,
    RETRYABLE_CODES,
    STATUS_CODES,
    ApiErrorHandler,
    ApiErrorResponse,
    ApiSuccessResponse,
    ErrorCode,
    create_success_response,
    get_error_code,
    get_status_code,
)

__all__ = [
    "ErrorCode",
    "ApiErrorHandler",
    "ApiErrorResponse",
    "ApiSuccessResponse",
    "STATUS_CODES",
    "ERROR_MESSAGES",
    "RETRYABLE_CODES",
    "create_success_response",
    "get_error_code",
    "get_status_code",
]
