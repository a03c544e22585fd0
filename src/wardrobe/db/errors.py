"""
Database Error Handler

Maps PostgreSQL errors to user-facing messages and a retry verdict:
- row level security violations
- NOT NULL / UNIQUE / FOREIGN KEY / CHECK constraint violations
- connection failures, timeouts, connection exhaustion
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

import psycopg2

from ..common.logger import StructuredLogger
from ..exceptions import (
    PG_CHECK_VIOLATION,
    PG_CONNECTION_FAILURE,
    PG_FOREIGN_KEY_VIOLATION,
    PG_INSUFFICIENT_PRIVILEGE,
    PG_NOT_NULL_VIOLATION,
    PG_TOO_MANY_CONNECTIONS,
    PG_UNIQUE_VIOLATION,
    ConnectionLostError,
    ConstraintViolationError,
    DatabaseError,
    ForbiddenError,
    OperationTimeoutError,
    WardrobeError,
)

COMPONENT = "DbErrorHandler"

_QUOTED_NAME = re.compile(r'"([^"]+)"')
_COLUMN_NAME = re.compile(r'column[:\s]+"?([a-z_]+)"?', re.IGNORECASE)


@dataclass(frozen=True)
class DbError:
    code: str
    message: str
    details: Optional[str] = None
    hint: Optional[str] = None
    constraint: Optional[str] = None


@dataclass(frozen=True)
class DbErrorInfo:
    user_message: str
    is_retryable: bool
    should_log: bool  # whether more logging than handle_db_error's own is warranted
    context: dict[str, Any] = field(default_factory=dict)


def _get(error: Any, key: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(key)
    return getattr(error, key, None)


def extract_field_name(message: str) -> str:
    """Quoted token first, then the token after "column", else "field" """
    match = _QUOTED_NAME.search(message)
    if match:
        return match.group(1)

    match = _COLUMN_NAME.search(message)
    if match:
        return match.group(1)

    return "field"


class DbErrorHandler:
    """Classifies database driver errors for callers and the API layer"""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or StructuredLogger()

    def parse_error(self, error: Any) -> DbError:
        """
        Normalize a driver error into a DbError

        Accepts psycopg2 exceptions, dicts and objects with code/message/details/hint/constraint.
        """
        if isinstance(error, psycopg2.Error):
            diag = error.diag
            return DbError(
                code=error.pgcode or "UNKNOWN",
                message=(error.pgerror or str(error)).strip(),
                details=getattr(diag, "message_detail", None),
                hint=getattr(diag, "message_hint", None),
                constraint=getattr(diag, "constraint_name", None),
            )

        code = _get(error, "code")
        message = _get(error, "message")
        return DbError(
            code=str(code) if code else "UNKNOWN",
            message=str(message) if message else str(error),
            details=_get(error, "details"),
            hint=_get(error, "hint"),
            constraint=_get(error, "constraint"),
        )

    # Same shape as the Supabase/PostgREST error payload
    parse_supabase_error = parse_error

    def handle_db_error(self, error: Any, context: Optional[Mapping[str, Any]] = None) -> DbErrorInfo:
        """Log the error, then classify it"""
        db_error = self.parse_error(error)

        self.logger.error(
            f"Database error: {db_error.code}",
            {
                "component": COMPONENT,
                "code": db_error.code,
                "message": db_error.message,
                "details": db_error.details,
                "hint": db_error.hint,
                **(context or {}),
            },
        )

        return self.map_error(db_error)

    def map_error(self, error: DbError) -> DbErrorInfo:
        code = error.code.upper()
        message = error.message

        if code == PG_INSUFFICIENT_PRIVILEGE or "RLS" in message:
            return DbErrorInfo(
                user_message="You do not have permission to access this data.",
                is_retryable=False,
                should_log=False,
                context={"type": "RLS_VIOLATION", "code": code},
            )

        if code == PG_NOT_NULL_VIOLATION or "NOT NULL" in message:
            field_name = extract_field_name(message)
            return DbErrorInfo(
                user_message=f"Required field is missing: {field_name}. Please try again.",
                is_retryable=False,
                should_log=True,
                context={"type": "NOT_NULL", "field": field_name},
            )

        if code == PG_UNIQUE_VIOLATION or "unique" in message:
            field_name = extract_field_name(message)
            return DbErrorInfo(
                user_message=f"This {field_name} already exists. Please use a different value.",
                is_retryable=False,
                should_log=True,
                context={"type": "UNIQUE", "field": field_name},
            )

        if code == PG_FOREIGN_KEY_VIOLATION or "foreign key" in message:
            return DbErrorInfo(
                user_message="Referenced item does not exist. Please check your input.",
                is_retryable=False,
                should_log=True,
                context={"type": "FOREIGN_KEY"},
            )

        if code == PG_CHECK_VIOLATION or "check constraint" in message:
            return DbErrorInfo(
                user_message="Invalid data provided. Please check your input.",
                is_retryable=False,
                should_log=True,
                context={"type": "CHECK_CONSTRAINT"},
            )

        if self._is_connection_failure(code, message):
            return DbErrorInfo(
                user_message="Database connection failed. Please try again.",
                is_retryable=True,
                should_log=True,
                context={"type": "CONNECTION_ERROR"},
            )

        if "timeout" in message or "timed out" in message:
            return DbErrorInfo(
                user_message="The request took too long. Please try again.",
                is_retryable=True,
                should_log=True,
                context={"type": "TIMEOUT"},
            )

        if code == PG_TOO_MANY_CONNECTIONS or "too many connections" in message:
            return DbErrorInfo(
                user_message="The server is busy. Please try again in a moment.",
                is_retryable=True,
                should_log=True,
                context={"type": "TOO_MANY_CONNECTIONS"},
            )

        return DbErrorInfo(
            user_message="A database error occurred. Please try again.",
            is_retryable=True,
            should_log=True,
            context={"type": "GENERIC", "code": code},
        )

    def to_exception(self, error: Any, context: Optional[Mapping[str, Any]] = None) -> WardrobeError:
        """Typed exception for a driver error, ready to raise (does not log)"""
        db_error = self.parse_error(error)
        info = self.map_error(db_error)
        kind = info.context["type"]
        ctx = {"sqlstate": db_error.code, **(context or {})}
        original = error if isinstance(error, BaseException) else None

        if kind == "RLS_VIOLATION":
            return ForbiddenError(info.user_message, context=ctx, original_error=original)
        if kind in ("NOT_NULL", "UNIQUE", "FOREIGN_KEY", "CHECK_CONSTRAINT"):
            return ConstraintViolationError(
                info.user_message,
                constraint=db_error.constraint,
                field=info.context.get("field"),
                context=ctx,
                original_error=original,
            )
        if kind == "CONNECTION_ERROR":
            return ConnectionLostError(info.user_message, context=ctx, original_error=original)
        if kind == "TIMEOUT":
            return OperationTimeoutError(info.user_message, context=ctx, original_error=original)
        return DatabaseError(info.user_message, context=ctx, original_error=original)

    # Predicates, each derived from the raw error

    def is_retryable(self, error: Any) -> bool:
        return self.map_error(self.parse_error(error)).is_retryable

    def is_rls_violation(self, error: Any) -> bool:
        db_error = self.parse_error(error)
        return db_error.code == PG_INSUFFICIENT_PRIVILEGE or "RLS" in db_error.message

    def is_validation_error(self, error: Any) -> bool:
        """235xx: constraint violations"""
        return self.parse_error(error).code.upper().startswith("235")

    def is_connection_error(self, error: Any) -> bool:
        db_error = self.parse_error(error)
        return self._is_connection_failure(db_error.code, db_error.message) or any(
            token in db_error.message for token in ("ECONNREFUSED", "ENOTFOUND")
        )

    @staticmethod
    def _is_connection_failure(code: str, message: str) -> bool:
        return (
            code == PG_CONNECTION_FAILURE
            or "Connection refused" in message
            or "connection closed" in message
        )
