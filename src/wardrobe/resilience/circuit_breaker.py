"""
Circuit Breaker Pattern Implementation
Stops calling a dependency that keeps failing, to avoid cascading failures.

States:
- CLOSED: normal operation, calls pass through
- OPEN: failure threshold reached, calls are rejected immediately
- HALF_OPEN: testing recovery, calls pass through; one failure reopens
"""

import functools
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, fields
from enum import Enum
from threading import Lock
from typing import Any, Optional, TypeVar

from ..common.logger import StructuredLogger
from ..exceptions import CircuitOpenError

T = TypeVar("T")

COMPONENT = "CircuitBreaker"


def _now_ms() -> float:
    return time.time() * 1000


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5  # consecutive failures before opening
    success_threshold: int = 2  # HALF_OPEN successes before closing
    timeout_ms: float = 30000  # time OPEN before a trial call is allowed

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "CircuitBreakerConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})


@dataclass(frozen=True)
class CircuitBreakerStatus:
    state: CircuitState
    failures: int
    successes: int
    last_failure_time: Optional[float]
    next_retry_time: Optional[float]

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failures": self.failures,
            "successes": self.successes,
            "last_failure_time": self.last_failure_time,
            "next_retry_time": self.next_retry_time,
        }


class CircuitBreaker:
    """Per-dependency circuit breaker.

    Counters and state change under a lock, so one instance can be shared by
    threads as well as by tasks of an event loop.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | Mapping[str, Any] | None = None,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], float] = _now_ms,
    ):
        """
        Args:
            name: Dependency name (used in logs and errors)
            config: CircuitBreakerConfig or dict of overrides
            logger: Receives state transition entries
            clock: Current time in epoch milliseconds
        """
        if isinstance(config, Mapping):
            config = CircuitBreakerConfig.from_dict(config)
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self.logger = logger or StructuredLogger()
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failures = 0
        self.successes = 0
        self.last_failure_time: Optional[float] = None
        self.next_retry_time: Optional[float] = None

        self._lock = Lock()

        self.logger.info(
            f"CircuitBreaker initialized: {name}",
            {
                "component": COMPONENT,
                "failure_threshold": self.config.failure_threshold,
                "success_threshold": self.config.success_threshold,
                "timeout_ms": self.config.timeout_ms,
            },
        )

    def peek_state(self) -> CircuitState:
        """Current state, without any transition"""
        return self.state

    def check_and_maybe_transition(self) -> bool:
        """Whether a call may go through now.

        Mutating: when the circuit is OPEN and its retry time has passed, this
        moves it to HALF_OPEN (and zeroes the success counter) before answering.
        """
        with self._lock:
            if self.state == CircuitState.CLOSED:
                return True

            if self.state == CircuitState.OPEN:
                if self.next_retry_time is not None and self._clock() >= self.next_retry_time:
                    self._set_state(CircuitState.HALF_OPEN)
                    self.successes = 0
                    return True
                return False

            # HALF_OPEN: let calls through to test recovery
            return True

    can_execute = check_and_maybe_transition

    def record_success(self) -> None:
        with self._lock:
            self.failures = 0
            self.last_failure_time = None

            if self.state == CircuitState.HALF_OPEN:
                self.successes += 1
                self.logger.info(
                    f"CircuitBreaker {self.name} success in HALF_OPEN "
                    f"({self.successes}/{self.config.success_threshold})",
                    {"component": COMPONENT, "successes": self.successes},
                )
                if self.successes >= self.config.success_threshold:
                    self._reset()

    def record_failure(self) -> None:
        with self._lock:
            self.failures += 1
            self.last_failure_time = self._clock()

            self.logger.warn(
                f"CircuitBreaker {self.name} failure ({self.failures}/{self.config.failure_threshold})",
                {"component": COMPONENT, "failures": self.failures},
            )

            if self.state == CircuitState.HALF_OPEN:
                # One strike in HALF_OPEN reopens, regardless of thresholds
                self._open()
            elif self.failures >= self.config.failure_threshold:
                self._open()

    def open(self) -> None:
        """Force the circuit OPEN (no-op if already open)"""
        with self._lock:
            self._open()

    def close(self) -> None:
        """Manually reset to CLOSED"""
        with self._lock:
            self._reset()

    def get_status(self) -> CircuitBreakerStatus:
        with self._lock:
            return CircuitBreakerStatus(
                state=self.state,
                failures=self.failures,
                successes=self.successes,
                last_failure_time=self.last_failure_time,
                next_retry_time=self.next_retry_time,
            )

    def retry_in_ms(self) -> float:
        return max((self.next_retry_time or 0) - self._clock(), 0)

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Await fn() under circuit breaker protection

        Raises:
            CircuitOpenError: If the circuit rejects the call (fn is not called)
            Exception: Whatever fn raised (recorded as a failure)
        """
        if not self.can_execute():
            raise CircuitOpenError(self.name, self.retry_in_ms())

        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Synchronous counterpart of execute(), for blocking drivers"""
        if not self.can_execute():
            raise CircuitOpenError(self.name, self.retry_in_ms())

        try:
            result = func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    # Internals (caller holds the lock)

    def _open(self) -> None:
        if self.state != CircuitState.OPEN:
            self._set_state(CircuitState.OPEN)
            self.next_retry_time = self._clock() + self.config.timeout_ms
            self.logger.error(
                f"CircuitBreaker {self.name} opened after {self.failures} failures",
                {"component": COMPONENT, "failures": self.failures, "retry_after_ms": self.config.timeout_ms},
            )

    def _reset(self) -> None:
        self._set_state(CircuitState.CLOSED)
        self.failures = 0
        self.successes = 0
        self.last_failure_time = None
        self.next_retry_time = None
        self.logger.info(f"CircuitBreaker {self.name} reset to CLOSED", {"component": COMPONENT})

    def _set_state(self, new_state: CircuitState) -> None:
        if new_state != self.state:
            self.logger.info(
                f"CircuitBreaker {self.name}: {self.state.value} -> {new_state.value}",
                {"component": COMPONENT},
            )
            self.state = new_state


class CircuitBreakerRegistry:
    """One breaker per dependency name; the first caller's config wins"""

    def __init__(
        self,
        logger: Optional[StructuredLogger] = None,
        default_config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = _now_ms,
    ):
        self.logger = logger or StructuredLogger()
        self.default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = Lock()

    def get(
        self, name: str, config: CircuitBreakerConfig | Mapping[str, Any] | None = None
    ) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name,
                    config if config is not None else self.default_config,
                    logger=self.logger,
                    clock=self._clock,
                )
                self._breakers[name] = breaker
            return breaker

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.close()
        self.logger.info("All circuit breakers reset", {"component": COMPONENT})

    def get_all_statuses(self) -> dict[str, CircuitBreakerStatus]:
        with self._lock:
            breakers = dict(self._breakers)
        return {name: breaker.get_status() for name, breaker in breakers.items()}

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)


# Default registry for callers that don't hold a ResilienceContext
_default_registry: Optional[CircuitBreakerRegistry] = None


def get_default_registry() -> CircuitBreakerRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = CircuitBreakerRegistry()
    return _default_registry


def get_circuit_breaker(
    name: str, config: CircuitBreakerConfig | Mapping[str, Any] | None = None
) -> CircuitBreaker:
    return get_default_registry().get(name, config)


def reset_all_circuit_breakers() -> None:
    get_default_registry().reset_all()


def get_all_circuit_breaker_statuses() -> dict[str, CircuitBreakerStatus]:
    return get_default_registry().get_all_statuses()


def circuit_breaker(
    name: str | None = None,
    config: CircuitBreakerConfig | Mapping[str, Any] | None = None,
    registry: Optional[CircuitBreakerRegistry] = None,
):
    """Decorator to run a coroutine function under a named circuit breaker.

    Args:
        name: Breaker name (default: module.function)
        config: Breaker config, used only if the name is new to the registry
        registry: Registry to take the breaker from (default registry if None)

    Example:
        @circuit_breaker("retailer:nike", {"failure_threshold": 3})
        async def fetch_nike_page(url):
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        cb_name = name or f"{func.__module__}.{func.__name__}"
        target = registry if registry is not None else get_default_registry()
        breaker = target.get(cb_name, config)

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await breaker.execute(lambda: func(*args, **kwargs))

        # Attach breaker so callers can inspect it
        wrapper.circuit_breaker = breaker
        return wrapper

    return decorator
