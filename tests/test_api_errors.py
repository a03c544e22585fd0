"""
Unit tests for the API error envelope.
"""

import json
from types import SimpleNamespace

import aiohttp
import pytest

from wardrobe.api.errors import (
    ApiErrorHandler,
    create_success_response,
    get_error_code,
    get_status_code,
)
from wardrobe.exceptions import (
    CircuitOpenError,
    ErrorCode,
    NotFoundError,
    RateLimitError,
)

EXPECTED_STATUS = {
    "VALIDATION_ERROR": 400,
    "UNAUTHORIZED": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "RATE_LIMITED": 429,
    "INTERNAL_ERROR": 500,
    "DATABASE_ERROR": 500,
    "STORAGE_ERROR": 500,
    "SERVICE_UNAVAILABLE": 503,
    "TIMEOUT": 504,
    "INVALID_REQUEST": 400,
}


@pytest.fixture
def handler(logger):
    return ApiErrorHandler(logger=logger)


def body_of(response):
    return json.loads(response.text)


def test_every_code_maps_to_documented_status(handler):
    assert {code.value for code in ErrorCode} == set(EXPECTED_STATUS)
    for code in ErrorCode:
        envelope = handler.create_error_response(code)
        assert envelope["success"] is False
        assert get_status_code(envelope["error"]["code"]) == EXPECTED_STATUS[code.value]


def test_create_error_response_canned_message(handler):
    envelope = handler.create_error_response(ErrorCode.NOT_FOUND)

    assert envelope == {
        "success": False,
        "error": {"code": "NOT_FOUND", "message": "The requested resource was not found."},
    }


def test_create_error_response_custom_fields(handler):
    envelope = handler.create_error_response(
        "CONFLICT", "Item already in wardrobe", {"sku": "DD1391-100"}, "req-1"
    )

    assert envelope["error"] == {
        "code": "CONFLICT",
        "message": "Item already in wardrobe",
        "details": {"sku": "DD1391-100"},
        "requestId": "req-1",
    }


def test_success_response():
    assert create_success_response({"id": 7}) == {"success": True, "data": {"id": 7}}


@pytest.mark.parametrize(
    "message, code, status",
    [
        ("Invalid size value", "VALIDATION_ERROR", 400),
        ("validation failed for brand", "VALIDATION_ERROR", 400),
        ("Item not found", "NOT_FOUND", 404),
        ("Unauthorized request", "UNAUTHORIZED", 401),
        ("Permission denied for outfit", "FORBIDDEN", 403),
        ("Upstream timeout", "TIMEOUT", 504),
        ("Scrape timed out", "TIMEOUT", 504),
        ("database unreachable", "DATABASE_ERROR", 500),
        ("something odd", "INTERNAL_ERROR", 500),
    ],
)
def test_handle_error_classifies_messages(handler, message, code, status):
    response = handler.handle_error(Exception(message))

    assert response.status == status
    assert response.content_type == "application/json"
    body = body_of(response)
    assert body["success"] is False
    assert body["error"]["code"] == code
    assert body["error"]["message"] == message


def test_handle_error_typed_errors(handler):
    assert handler.handle_error(NotFoundError("No outfit 12")).status == 404
    assert handler.handle_error(RateLimitError(retry_after=30)).status == 429

    response = handler.handle_error(CircuitOpenError("stockx", 1200))
    assert response.status == 503
    assert body_of(response)["error"]["code"] == "SERVICE_UNAVAILABLE"


def test_handle_error_logs_request_context(handler, logger):
    context = {"route": "/api/items", "method": "POST", "user_id": "u1", "request_id": "req-9"}

    response = handler.handle_error(Exception("Item not found"), context)

    assert body_of(response)["error"]["requestId"] == "req-9"
    entry = logger.buffer[-1]
    assert entry.level.value == "ERROR"
    assert entry.error.name == "Exception"
    assert entry.context["route"] == "/api/items"
    assert entry.context["request_id"] == "req-9"


def test_handle_error_plain_object(handler):
    payload = {"message": "Quota exceeded", "limit": 50}

    response = handler.handle_error(payload)

    assert response.status == 500
    body = body_of(response)
    assert body["error"]["message"] == "Quota exceeded"
    assert body["error"]["details"] == payload


def test_handle_error_object_without_message(handler):
    response = handler.handle_error({"status": "weird"})

    assert body_of(response)["error"]["message"] == "Unknown error"


def test_handle_error_scalar(handler):
    response = handler.handle_error("plain failure")

    assert response.status == 500
    assert body_of(response)["error"] == {"code": "INTERNAL_ERROR", "message": "plain failure"}


def test_handle_error_never_exposes_stack(handler):
    try:
        raise Exception("database exploded")
    except Exception as e:
        body = body_of(handler.handle_error(e))

    assert "Traceback" not in json.dumps(body)


def test_validate_required():
    assert ApiErrorHandler.validate_required({"a": 1, "b": ""}, ["a", "b"]) == "Missing required field: b"
    assert ApiErrorHandler.validate_required({"a": 1, "b": "x"}, ["a", "b"]) is None
    assert ApiErrorHandler.validate_required({"b": "x"}, ["a", "b"]) == "Missing required field: a"


def test_validate_required_treats_falsy_as_missing():
    assert ApiErrorHandler.validate_required({"price": 0}, ["price"]) == "Missing required field: price"
    assert ApiErrorHandler.validate_required({"pinned": False}, ["pinned"]) == "Missing required field: pinned"


def test_is_retryable_error():
    retryable = {"TIMEOUT", "SERVICE_UNAVAILABLE", "RATE_LIMITED", "DATABASE_ERROR", "STORAGE_ERROR"}
    for code in ErrorCode:
        assert ApiErrorHandler.is_retryable_error(code) is (code.value in retryable)


def test_get_error_code_inverse():
    assert get_error_code(404) == ErrorCode.NOT_FOUND
    assert get_error_code(504) == ErrorCode.TIMEOUT
    assert get_error_code(418) == ErrorCode.INTERNAL_ERROR


@pytest.mark.parametrize(
    "status, code, expected_status",
    [
        (400, "VALIDATION_ERROR", 400),
        (401, "UNAUTHORIZED", 401),
        (403, "FORBIDDEN", 403),
        (404, "NOT_FOUND", 404),
        (409, "CONFLICT", 409),
        (422, "INVALID_REQUEST", 400),
        (429, "RATE_LIMITED", 429),
        (502, "SERVICE_UNAVAILABLE", 503),
        (504, "TIMEOUT", 504),
    ],
)
def test_handle_error_upstream_response_status(handler, status, code, expected_status):
    request_info = SimpleNamespace(real_url="https://api.goat.com/v1/products")
    error = aiohttp.ClientResponseError(request_info, (), status=status, message="upstream")

    response = handler.handle_error(error)

    assert response.status == expected_status
    assert body_of(response)["error"]["code"] == code


def test_create_error_response_keeps_empty_details(handler):
    envelope = handler.create_error_response(ErrorCode.VALIDATION_ERROR, details={})

    assert envelope["error"]["details"] == {}
