"""
Retry with exponential backoff

Handles transient failures of async operations:
- network timeouts and refused/reset connections
- 5xx responses and rate limits (429)
- transient database conditions

Non-retryable errors fail fast on the first attempt.
"""

import asyncio
import functools
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, fields, replace
from typing import Any, Generic, Optional, TypeVar

from ..common.logger import StructuredLogger
from ..exceptions import OperationTimeoutError, is_transient

T = TypeVar("T")

COMPONENT = "RetryEngine"


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    initial_delay_ms: float = 100
    max_delay_ms: float = 5000
    backoff_multiplier: float = 2
    jitter: bool = True  # up to +10%, spreads out synchronized retries

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "RetryConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})

    def merge(self, overrides: "RetryConfig | Mapping[str, Any] | None") -> "RetryConfig":
        if overrides is None:
            return self
        if isinstance(overrides, RetryConfig):
            return overrides
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown retry option(s): {', '.join(sorted(unknown))}")
        return replace(self, **overrides)


@dataclass
class RetryResult(Generic[T]):
    success: bool
    attempts: int
    total_duration_ms: int
    data: Optional[T] = None
    error: Optional[BaseException] = None


class RetryEngine:
    """Runs an async operation until it succeeds, fails fast, or exhausts its attempts"""

    def __init__(
        self,
        logger: Optional[StructuredLogger] = None,
        default_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        """
        Args:
            logger: Receives retry/failure entries
            default_config: Policy used when a call passes no config
            sleep: Coroutine taking seconds (injectable for tests)
            rng: Source of jitter in [0, 1)
        """
        self.logger = logger or StructuredLogger()
        self.default_config = default_config or RetryConfig()
        self._sleep = sleep
        self._rng = rng

    def is_retryable(self, error: BaseException) -> bool:
        return is_transient(error)

    def calculate_delay(self, attempt: int, config: RetryConfig) -> int:
        """Delay in ms before the attempt after `attempt` (1-indexed)"""
        delay = config.initial_delay_ms * config.backoff_multiplier ** (attempt - 1)
        delay = min(delay, config.max_delay_ms)

        if config.jitter:
            delay += delay * (self._rng() * 0.1)

        return round(delay)

    async def retry_with_backoff(
        self,
        fn: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        config: RetryConfig | Mapping[str, Any] | None = None,
    ) -> RetryResult[T]:
        """
        Call fn() with exponential backoff, never raising its errors

        Args:
            fn: Zero-argument coroutine function
            operation_name: Label used in log entries
            config: RetryConfig or a dict of overrides

        Returns:
            RetryResult with data on success or the last error on failure
        """
        cfg = self.default_config.merge(config)
        start = time.perf_counter()
        last_error: Optional[BaseException] = None

        for attempt in range(1, cfg.max_retries + 2):
            try:
                data = await fn()
            except Exception as e:
                last_error = e
                duration = _elapsed_ms(start)

                if not self.is_retryable(e):
                    self.logger.error(
                        f"{operation_name} failed with non-retryable error",
                        e,
                        {"component": COMPONENT, "attempts": attempt, "operation_name": operation_name},
                    )
                    return RetryResult(success=False, error=e, attempts=attempt, total_duration_ms=duration)

                if attempt > cfg.max_retries:
                    self.logger.error(
                        f"{operation_name} failed after {cfg.max_retries} retries",
                        e,
                        {
                            "component": COMPONENT,
                            "attempts": attempt,
                            "duration_ms": duration,
                            "operation_name": operation_name,
                        },
                    )
                    return RetryResult(success=False, error=e, attempts=attempt, total_duration_ms=duration)

                delay = self.calculate_delay(attempt, cfg)
                self.logger.warn(
                    f"{operation_name} failed, retrying in {delay}ms (attempt {attempt}/{cfg.max_retries})",
                    {
                        "component": COMPONENT,
                        "attempt": attempt,
                        "max_retries": cfg.max_retries,
                        "delay": delay,
                        "error": str(e),
                    },
                )
                await self._sleep(delay / 1000)
                continue

            duration = _elapsed_ms(start)
            if attempt > 1:
                self.logger.info(
                    f"{operation_name} succeeded after {attempt - 1} retries",
                    {"component": COMPONENT, "attempts": attempt, "duration_ms": duration},
                )
            return RetryResult(success=True, data=data, attempts=attempt, total_duration_ms=duration)

        # Only reachable with a negative max_retries
        return RetryResult(
            success=False,
            error=last_error or RuntimeError("Unknown error"),
            attempts=max(cfg.max_retries + 1, 0),
            total_duration_ms=_elapsed_ms(start),
        )

    async def retry(
        self,
        fn: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        config: RetryConfig | Mapping[str, Any] | None = None,
    ) -> T:
        """Like retry_with_backoff, but returns the data or raises the last error"""
        result = await self.retry_with_backoff(fn, operation_name, config)
        if not result.success:
            raise result.error
        return result.data

    async def retry_with_timeout(
        self,
        fn: Callable[[], Awaitable[T]],
        timeout_ms: float,
        operation_name: str = "operation",
        config: RetryConfig | Mapping[str, Any] | None = None,
    ) -> T:
        """
        retry() bounded by an overall deadline

        When the deadline passes the in-flight attempt (or backoff sleep) is
        cancelled and OperationTimeoutError is raised.
        """
        task = asyncio.ensure_future(self.retry(fn, operation_name, config))
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        error = OperationTimeoutError(
            f"{operation_name} timed out after {timeout_ms}ms",
            timeout_ms=timeout_ms,
            operation=operation_name,
        )
        self.logger.error(error.message, error, {"component": COMPONENT, "operation_name": operation_name})
        raise error


def retryable(
    operation_name: str | None = None,
    config: RetryConfig | Mapping[str, Any] | None = None,
    engine: Optional[RetryEngine] = None,
):
    """
    Decorator to retry a coroutine function with exponential backoff

    Example:
        @retryable("fetch_shopify_json", {"max_retries": 2})
        async def fetch_product(url):
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = operation_name or func.__name__
        retry_engine = engine or RetryEngine()

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_engine.retry(lambda: func(*args, **kwargs), name, config)

        wrapper.retry_engine = retry_engine
        return wrapper

    return decorator


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)
