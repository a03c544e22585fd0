"""
Resilience Module - retry, circuit breaker and composed execution
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerStatus,
    CircuitState,
    circuit_breaker,
    get_all_circuit_breaker_statuses,
    get_circuit_breaker,
    reset_all_circuit_breakers,
)
from .client_config import (
    API_ENDPOINT_MAP,
    ApiClientConfig,
    ApiEndpointType,
    get_api_client_config,
    get_endpoint_type_by_route,
    get_timeout_ms,
)
from .error_handler import ResilientExecutor, with_resilience
from .retry import RetryConfig, RetryEngine, RetryResult, retryable

__all__ = [
    # Retry
    "RetryConfig",
    "RetryEngine",
    "RetryResult",
    "retryable",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitBreakerStatus",
    "CircuitState",
    "circuit_breaker",
    "get_circuit_breaker",
    "reset_all_circuit_breakers",
    "get_all_circuit_breaker_statuses",
    # Endpoint tiers
    "ApiEndpointType",
    "ApiClientConfig",
    "API_ENDPOINT_MAP",
    "get_api_client_config",
    "get_timeout_ms",
    "get_endpoint_type_by_route",
    # Composed execution
    "ResilientExecutor",
    "with_resilience",
]
