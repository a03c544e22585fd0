"""
Unit tests for the exception hierarchy and error classification.
"""

from types import SimpleNamespace

import aiohttp
import psycopg2
import psycopg2.errors
import pytest
import requests

from wardrobe.exceptions import (
    CircuitOpenError,
    ConnectionLostError,
    ConstraintViolationError,
    DatabaseError,
    ErrorCode,
    ForbiddenError,
    InvalidRequestError,
    NetworkError,
    NotFoundError,
    OperationTimeoutError,
    RateLimitError,
    ServiceUnavailableError,
    UnauthorizedError,
    ValidationError,
    WardrobeError,
    classify_error,
    exception_for_sqlstate,
    is_transient,
)


def response_error(status):
    request_info = SimpleNamespace(real_url="https://www.nike.com/t/air-force-1")
    return aiohttp.ClientResponseError(request_info, (), status=status, message="upstream")


def unique_violation():
    return psycopg2.errors.UniqueViolation(
        'duplicate key value violates unique constraint "user_connections_pkey"'
    )


def test_str_includes_context():
    error = WardrobeError("Scrape failed", context={"retailer": "nike", "attempt": 2})

    assert str(error) == "Scrape failed [retailer=nike, attempt=2]"
    assert str(WardrobeError("Scrape failed")) == "Scrape failed"


def test_to_dict():
    original = ValueError("bad")
    error = ValidationError("size is required", field="size", original_error=original)

    assert error.to_dict() == {
        "error_type": "ValidationError",
        "code": "VALIDATION_ERROR",
        "message": "size is required",
        "retryable": False,
        "context": {"field": "size"},
        "original_error": "bad",
    }


def test_typed_error_attributes():
    assert RateLimitError(retry_after=30).context == {"retry_after": 30}
    assert RateLimitError().retryable is True

    timeout = OperationTimeoutError("scrape timed out", timeout_ms=5000, operation="scrape")
    assert isinstance(timeout, TimeoutError)
    assert timeout.code == ErrorCode.TIMEOUT
    assert timeout.context == {"timeout_ms": 5000, "operation": "scrape"}

    circuit = CircuitOpenError("retailer:nike", 1234.4)
    assert circuit.message == "CircuitBreaker retailer:nike is OPEN. Retrying in 1234ms"
    assert circuit.code == ErrorCode.SERVICE_UNAVAILABLE

    constraint = ConstraintViolationError("dup", constraint="items_sku_key")
    assert isinstance(constraint, DatabaseError)
    assert constraint.retryable is False
    assert constraint.code == ErrorCode.CONFLICT


@pytest.mark.parametrize(
    "error",
    [
        TimeoutError(),
        ConnectionResetError(),
        response_error(503),
        response_error(429),
        aiohttp.ClientConnectionError("refused"),
        requests.Timeout(),
        requests.ConnectionError(),
        psycopg2.OperationalError("server closed the connection unexpectedly"),
        NetworkError("dns failure"),
        Exception("ETIMEDOUT"),
    ],
)
def test_is_transient(error):
    assert is_transient(error) is True


@pytest.mark.parametrize(
    "error",
    [
        response_error(404),
        response_error(400),
        response_error(401),
        response_error(422),
        unique_violation(),
        ValidationError("bad"),
        ConstraintViolationError("dup"),
        Exception("Item not found"),
        KeyboardInterrupt(),
    ],
)
def test_is_not_transient(error):
    assert is_transient(error) is False


def test_classify_passes_typed_errors_through():
    error = NotFoundError("No item 7")

    assert classify_error(error) is error


@pytest.mark.parametrize(
    "error, expected",
    [
        (TimeoutError(), OperationTimeoutError),
        (requests.Timeout("read timed out"), OperationTimeoutError),
        (response_error(429), RateLimitError),
        (response_error(404), NotFoundError),
        (response_error(502), NetworkError),
        (response_error(401), UnauthorizedError),
        (response_error(403), ForbiddenError),
        (response_error(422), InvalidRequestError),
        (response_error(503), ServiceUnavailableError),
        (response_error(504), OperationTimeoutError),
        (ConnectionRefusedError("refused"), NetworkError),
        (requests.ConnectionError("dns"), NetworkError),
        (psycopg2.OperationalError("could not connect"), ConnectionLostError),
        (unique_violation(), ConstraintViolationError),
        (psycopg2.IntegrityError("null value in column"), ConstraintViolationError),
        (Exception("Invalid colorway"), ValidationError),
        (Exception("Outfit not found"), NotFoundError),
        (Exception("Unauthorized"), UnauthorizedError),
        (Exception("permission denied"), ForbiddenError),
        (Exception("request timeout"), OperationTimeoutError),
        (Exception("database exploded"), DatabaseError),
    ],
)
def test_classify_error(error, expected):
    classified = classify_error(error, context={"dependency": "nike"})

    assert type(classified) is expected
    assert classified.original_error is error
    assert classified.context["dependency"] == "nike"


def test_classify_fallback():
    classified = classify_error(Exception("something odd"))

    assert type(classified) is WardrobeError
    assert classified.code == ErrorCode.INTERNAL_ERROR
    assert classified.retryable is False


def test_classify_response_error_keeps_status_and_url():
    classified = classify_error(response_error(502))

    assert classified.status_code == 502
    assert classified.context["url"] == "https://www.nike.com/t/air-force-1"
    assert classified.retryable is True


def test_classify_response_error_for_client_status_is_permanent():
    classified = classify_error(response_error(401))

    assert classified.retryable is False
    assert classified.context["status_code"] == 401
    assert classified.context["url"] == "https://www.nike.com/t/air-force-1"


def test_classify_duplicate_key_ignores_connection_in_message():
    classified = classify_error(unique_violation())

    assert classified.retryable is False
    assert classified.code == ErrorCode.CONFLICT


def test_classify_empty_message_uses_type_name():
    assert classify_error(TimeoutError()).message == "TimeoutError"


@pytest.mark.parametrize(
    "code, expected",
    [
        ("42501", ForbiddenError),
        ("23505", ConstraintViolationError),
        ("23503", ConstraintViolationError),
        ("08006", ConnectionLostError),
        ("08001", ConnectionLostError),
        ("57P03", ConnectionLostError),
        ("57014", OperationTimeoutError),
        ("XX000", DatabaseError),
    ],
)
def test_exception_for_sqlstate(code, expected):
    error = exception_for_sqlstate(code, "db failure", constraint="items_sku_key")

    assert type(error) is expected
    assert error.context["sqlstate"] == code


def test_exception_for_sqlstate_rls_message():
    assert type(exception_for_sqlstate("PGRST301", "violates RLS policy")) is ForbiddenError
