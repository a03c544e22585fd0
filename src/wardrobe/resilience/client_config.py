"""
Timeout, retry and circuit breaker tiers per endpoint type

- Fast reads: 5s timeout, 3 retries
- Writes: 10s timeout, 2 retries
- File uploads: 30s timeout, 1 retry
- Background jobs: 60s timeout, no retries
"""

from dataclasses import dataclass
from enum import Enum

from .circuit_breaker import CircuitBreakerConfig
from .retry import RetryConfig


class ApiEndpointType(str, Enum):
    FAST_READ = "fast_read"  # GET /api/items, /api/outfits
    WRITE = "write"  # POST/PUT/DELETE /api/items, /api/outfits
    FILE_UPLOAD = "file_upload"  # image uploads
    BACKGROUND_JOB = "background_job"  # price checks, scheduled tasks


@dataclass(frozen=True)
class ApiClientConfig:
    timeout_ms: float
    retry: RetryConfig
    circuit_breaker: CircuitBreakerConfig


_CLIENT_CONFIGS: dict[ApiEndpointType, ApiClientConfig] = {
    ApiEndpointType.FAST_READ: ApiClientConfig(
        timeout_ms=5000,
        retry=RetryConfig(max_retries=3, initial_delay_ms=100, max_delay_ms=2000, backoff_multiplier=2),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=5, success_threshold=2, timeout_ms=30000),
    ),
    ApiEndpointType.WRITE: ApiClientConfig(
        timeout_ms=10000,
        retry=RetryConfig(max_retries=2, initial_delay_ms=200, max_delay_ms=3000, backoff_multiplier=2),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=4, success_threshold=2, timeout_ms=45000),
    ),
    ApiEndpointType.FILE_UPLOAD: ApiClientConfig(
        timeout_ms=30000,
        retry=RetryConfig(max_retries=1, initial_delay_ms=500, max_delay_ms=5000, backoff_multiplier=2),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=3, success_threshold=2, timeout_ms=60000),
    ),
    ApiEndpointType.BACKGROUND_JOB: ApiClientConfig(
        timeout_ms=60000,
        retry=RetryConfig(max_retries=0, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=2, success_threshold=1, timeout_ms=120000),
    ),
}

API_ENDPOINT_MAP: dict[str, ApiEndpointType] = {
    # Reads
    "GET /api/items": ApiEndpointType.FAST_READ,
    "GET /api/items/[id]": ApiEndpointType.FAST_READ,
    "GET /api/outfits": ApiEndpointType.FAST_READ,
    "GET /api/outfits/[id]": ApiEndpointType.FAST_READ,
    "GET /api/brands": ApiEndpointType.FAST_READ,
    "GET /api/brands/[id]": ApiEndpointType.FAST_READ,
    "GET /api/user/preferences": ApiEndpointType.FAST_READ,
    # Writes
    "POST /api/items": ApiEndpointType.WRITE,
    "PUT /api/items/[id]": ApiEndpointType.WRITE,
    "DELETE /api/items/[id]": ApiEndpointType.WRITE,
    "POST /api/outfits": ApiEndpointType.WRITE,
    "PUT /api/outfits/[id]": ApiEndpointType.WRITE,
    "DELETE /api/outfits/[id]": ApiEndpointType.WRITE,
    # File uploads
    "POST /api/upload": ApiEndpointType.FILE_UPLOAD,
    "POST /api/upload/bulk": ApiEndpointType.FILE_UPLOAD,
    # Background jobs
    "POST /api/price-check": ApiEndpointType.BACKGROUND_JOB,
    "POST /api/analytics/track": ApiEndpointType.BACKGROUND_JOB,
}


def get_api_client_config(endpoint_type: ApiEndpointType) -> ApiClientConfig:
    return _CLIENT_CONFIGS[ApiEndpointType(endpoint_type)]


def get_timeout_ms(endpoint_type: ApiEndpointType) -> float:
    return get_api_client_config(endpoint_type).timeout_ms


def get_endpoint_type_by_route(route: str) -> ApiEndpointType:
    """Endpoint type for "METHOD /path" (unknown routes are treated as writes)"""
    return API_ENDPOINT_MAP.get(route, ApiEndpointType.WRITE)
