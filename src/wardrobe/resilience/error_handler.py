"""
Resilient execution - combines the circuit breaker, retry engine and deadline
"""

import functools
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from ..exceptions import CircuitOpenError, classify_error
from .circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry, get_default_registry
from .client_config import ApiEndpointType, get_api_client_config
from .retry import RetryConfig, RetryEngine

T = TypeVar("T")


class ResilientExecutor:
    """
    Runs calls to one named dependency with:
    - a circuit breaker checked once per logical call
    - retries with backoff for transient errors
    - an overall deadline covering all attempts

    Failures come out as typed WardrobeError instances.
    """

    def __init__(
        self,
        name: str,
        endpoint_type: ApiEndpointType = ApiEndpointType.WRITE,
        breakers: Optional[CircuitBreakerRegistry] = None,
        retry_engine: Optional[RetryEngine] = None,
        timeout_ms: Optional[float] = None,
        retry_config: Optional[RetryConfig] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
    ):
        """
        Args:
            name: Dependency name, also the breaker name
            endpoint_type: Tier supplying timeout/retry/breaker defaults
            breakers: Registry holding the breaker (default registry if None)
            retry_engine: Engine running the attempts
            timeout_ms, retry_config, breaker_config: Overrides for the tier values
        """
        tier = get_api_client_config(endpoint_type)
        self.name = name
        self.endpoint_type = ApiEndpointType(endpoint_type)
        self.timeout_ms = timeout_ms if timeout_ms is not None else tier.timeout_ms
        self.retry_config = retry_config or tier.retry
        self.breaker_config = breaker_config or tier.circuit_breaker
        self.breakers = breakers if breakers is not None else get_default_registry()
        self.retry_engine = retry_engine or RetryEngine(logger=self.breakers.logger)

    @property
    def breaker(self):
        return self.breakers.get(self.name, self.breaker_config)

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Await fn() with breaker, retries and deadline

        Only transient failures count against the breaker; a non-retryable
        error (bad input, not found) says nothing about the dependency's health.

        Raises:
            CircuitOpenError: If the breaker rejects the call
            WardrobeError: The classified final error
        """
        breaker = self.breaker
        if not breaker.can_execute():
            raise CircuitOpenError(self.name, breaker.retry_in_ms())

        try:
            result = await self.retry_engine.retry_with_timeout(
                fn, self.timeout_ms, self.name, self.retry_config
            )
        except Exception as e:
            classified = classify_error(e, context={"dependency": self.name})
            if classified.retryable:
                breaker.record_failure()
            if classified is e:
                raise
            raise classified from e

        breaker.record_success()
        return result


def with_resilience(
    name: str,
    endpoint_type: ApiEndpointType = ApiEndpointType.WRITE,
    breakers: Optional[CircuitBreakerRegistry] = None,
    retry_engine: Optional[RetryEngine] = None,
):
    """
    Decorator to run a coroutine function through a ResilientExecutor

    Example:
        @with_resilience("retailer:stockx", ApiEndpointType.FAST_READ)
        async def fetch_stockx_listing(url):
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        executor = ResilientExecutor(
            name, endpoint_type, breakers=breakers, retry_engine=retry_engine
        )

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await executor.run(lambda: func(*args, **kwargs))

        wrapper.executor = executor
        return wrapper

    return decorator
