"""
Unit tests for the database error classifier.
"""

import psycopg2
import pytest

from wardrobe.db.errors import DbError, DbErrorHandler, extract_field_name
from wardrobe.exceptions import (
    ConnectionLostError,
    ConstraintViolationError,
    DatabaseError,
    ErrorCode,
    ForbiddenError,
    OperationTimeoutError,
)


@pytest.fixture
def handler(logger):
    return DbErrorHandler(logger=logger)


class PostgrestError:
    """Object-shaped error, as returned by the REST client"""

    def __init__(self, code, message, details=None, hint=None):
        self.code = code
        self.message = message
        self.details = details
        self.hint = hint


def test_unique_violation_extracts_constraint_name(handler):
    info = handler.handle_db_error(
        {"code": "23505", "message": 'duplicate key value violates unique constraint "items_sku_key"'}
    )

    assert "items_sku_key" in info.user_message
    assert info.user_message == "This items_sku_key already exists. Please use a different value."
    assert info.is_retryable is False
    assert info.context == {"type": "UNIQUE", "field": "items_sku_key"}


def test_handle_db_error_logs_with_context(handler, logger):
    handler.handle_db_error({"code": "23505", "message": "unique"}, {"table": "items"})

    entry = logger.buffer[-1]
    assert entry.message == "Database error: 23505"
    assert entry.context["component"] == "DbErrorHandler"
    assert entry.context["table"] == "items"


@pytest.mark.parametrize(
    "error, kind, retryable",
    [
        ({"code": "42501", "message": "permission denied for table items"}, "RLS_VIOLATION", False),
        ({"code": "PGRST301", "message": "new row violates RLS policy"}, "RLS_VIOLATION", False),
        ({"code": "23502", "message": 'null value in column "brand" violates not-null'}, "NOT_NULL", False),
        ({"code": "23503", "message": "insert violates foreign key constraint"}, "FOREIGN_KEY", False),
        ({"code": "23514", "message": "new row violates check constraint"}, "CHECK_CONSTRAINT", False),
        ({"code": "08006", "message": "server closed the connection"}, "CONNECTION_ERROR", True),
        ({"message": "connect: Connection refused"}, "CONNECTION_ERROR", True),
        ({"code": "57014", "message": "canceling statement due to statement timeout"}, "TIMEOUT", True),
        ({"code": "53300", "message": "sorry"}, "TOO_MANY_CONNECTIONS", True),
        ({"code": "XX000", "message": "internal error"}, "GENERIC", True),
    ],
)
def test_map_error_branches(handler, error, kind, retryable):
    info = handler.handle_db_error(error)

    assert info.context["type"] == kind
    assert info.is_retryable is retryable


def test_rls_violation_is_not_logged_further(handler):
    info = handler.handle_db_error({"code": "42501", "message": "denied"})

    assert info.should_log is False
    assert info.user_message == "You do not have permission to access this data."


def test_not_null_message(handler):
    info = handler.handle_db_error(
        {"code": "23502", "message": 'null value in column "size" of relation "items" violates NOT NULL'}
    )

    assert info.user_message == "Required field is missing: size. Please try again."


def test_unknown_code_defaults(handler):
    db_error = handler.parse_error({"message": "boom"})

    assert db_error == DbError(code="UNKNOWN", message="boom")


def test_parse_object_error(handler):
    error = PostgrestError("23503", "fk", details="Key (outfit_id)=(9) is not present", hint="check ids")

    db_error = handler.parse_supabase_error(error)

    assert db_error.code == "23503"
    assert db_error.details == "Key (outfit_id)=(9) is not present"
    assert db_error.hint == "check ids"


def test_parse_psycopg2_error(handler):
    error = psycopg2.OperationalError("could not connect: Connection refused")

    db_error = handler.parse_error(error)

    assert db_error.code == "UNKNOWN"
    assert "Connection refused" in db_error.message
    assert handler.is_connection_error(error) is True
    assert handler.is_retryable(error) is True


@pytest.mark.parametrize(
    "message, expected",
    [
        ('duplicate key value violates unique constraint "items_sku_key"', "items_sku_key"),
        ("null value in column brand violates not-null constraint", "brand"),
        ("Column: colorway is required", "colorway"),
        ("something without a name", "field"),
    ],
)
def test_extract_field_name(message, expected):
    assert extract_field_name(message) == expected


def test_predicates(handler):
    assert handler.is_rls_violation({"code": "42501", "message": ""}) is True
    assert handler.is_rls_violation({"code": "23505", "message": "unique"}) is False

    assert handler.is_validation_error({"code": "23505", "message": ""}) is True
    assert handler.is_validation_error({"code": "42501", "message": ""}) is False

    assert handler.is_connection_error({"message": "getaddrinfo ENOTFOUND db.example"}) is True
    assert handler.is_connection_error({"message": "connect ECONNREFUSED"}) is True
    assert handler.is_connection_error({"code": "23505", "message": "unique"}) is False

    assert handler.is_retryable({"code": "23505", "message": "unique"}) is False
    assert handler.is_retryable({"code": "53300", "message": "too many connections"}) is True


@pytest.mark.parametrize(
    "error, exc_type, code",
    [
        ({"code": "42501", "message": "denied"}, ForbiddenError, ErrorCode.FORBIDDEN),
        ({"code": "23505", "message": 'unique "items_sku_key"'}, ConstraintViolationError, ErrorCode.CONFLICT),
        ({"code": "08006", "message": "lost"}, ConnectionLostError, ErrorCode.DATABASE_ERROR),
        ({"code": "57014", "message": "statement timeout"}, OperationTimeoutError, ErrorCode.TIMEOUT),
        ({"code": "XX000", "message": "internal"}, DatabaseError, ErrorCode.DATABASE_ERROR),
    ],
)
def test_to_exception(handler, error, exc_type, code):
    exc = handler.to_exception(error, {"table": "items"})

    assert type(exc) is exc_type
    assert exc.code == code
    assert exc.context["table"] == "items"
    assert exc.context["sqlstate"] == error["code"]


def test_to_exception_carries_field(handler):
    exc = handler.to_exception({"code": "23505", "message": 'unique "items_sku_key"'})

    assert exc.field == "items_sku_key"
    assert exc.retryable is False


def test_to_exception_does_not_log(handler, logger):
    handler.to_exception({"code": "XX000", "message": "internal"})

    assert logger.buffer == []
