"""
Composition root for the resilience core

The application builds one ResilienceContext at startup and hands it to route
handlers, scrapers and repositories. Tests build their own isolated instances.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from .api.errors import ApiErrorHandler
from .common import config
from .common.logger import LogEntry, StructuredLogger, configure_logging
from .db.errors import DbErrorHandler
from .db.metrics import DatabaseMetrics
from .resilience.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from .resilience.client_config import ApiEndpointType
from .resilience.error_handler import ResilientExecutor
from .resilience.retry import RetryConfig, RetryEngine


@dataclass
class ResilienceContext:
    logger: StructuredLogger
    breakers: CircuitBreakerRegistry
    retry_engine: RetryEngine
    api_errors: ApiErrorHandler
    db_errors: DbErrorHandler
    db_metrics: DatabaseMetrics

    @classmethod
    def create(
        cls,
        logger: Optional[StructuredLogger] = None,
        retry_config: Optional[RetryConfig] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep=None,
        max_metrics: int = 100,
        slow_query_threshold_ms: float = 1000,
    ) -> "ResilienceContext":
        """Wire every component around one logger"""
        logger = logger or StructuredLogger()
        registry_kwargs = {"clock": clock} if clock is not None else {}
        engine_kwargs = {"sleep": sleep} if sleep is not None else {}
        return cls(
            logger=logger,
            breakers=CircuitBreakerRegistry(logger=logger, default_config=breaker_config, **registry_kwargs),
            retry_engine=RetryEngine(logger=logger, default_config=retry_config, **engine_kwargs),
            api_errors=ApiErrorHandler(logger=logger),
            db_errors=DbErrorHandler(logger=logger),
            db_metrics=DatabaseMetrics(
                logger=logger,
                max_metrics=max_metrics,
                slow_query_threshold_ms=slow_query_threshold_ms,
            ),
        )

    @classmethod
    def from_config(
        cls, sink: Optional[Callable[[list[LogEntry]], None]] = None
    ) -> "ResilienceContext":
        """Build from environment settings (see common.config)"""
        settings = config.get_config()
        logger = StructuredLogger.from_config(sink=sink)
        if logger.development:
            # Console lines go through the stdlib "wardrobe" logger
            configure_logging(settings["logging"]["level"])
        return cls.create(
            logger=logger,
            retry_config=RetryConfig.from_dict(settings["retry"]),
            breaker_config=CircuitBreakerConfig.from_dict(settings["circuit_breaker"]),
            max_metrics=settings["metrics"]["max_entries"],
            slow_query_threshold_ms=settings["metrics"]["slow_query_threshold_ms"],
        )

    def executor(
        self, name: str, endpoint_type: ApiEndpointType = ApiEndpointType.WRITE, **overrides
    ) -> ResilientExecutor:
        return ResilientExecutor(
            name,
            endpoint_type,
            breakers=self.breakers,
            retry_engine=self.retry_engine,
            **overrides,
        )

    def generate_request_id(self) -> str:
        return self.logger.generate_request_id()

    def health_snapshot(self) -> dict:
        """Breaker states and query stats, for a status endpoint"""
        stats = self.db_metrics.get_stats()
        return {
            "timestamp": int(time.time() * 1000),
            "circuit_breakers": {
                name: status.to_dict() for name, status in self.breakers.get_all_statuses().items()
            },
            "database": {
                "avg_duration_ms": stats.avg_duration_ms,
                "max_duration_ms": stats.max_duration_ms,
                "slow_query_count": stats.slow_query_count,
                "total_query_count": stats.total_query_count,
            },
        }


_default_context: Optional[ResilienceContext] = None


def get_default_context() -> ResilienceContext:
    """Lazily built process-wide context, for scripts without their own wiring"""
    global _default_context
    if _default_context is None:
        _default_context = ResilienceContext.from_config()
    return _default_context
