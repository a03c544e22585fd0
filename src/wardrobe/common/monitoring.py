"""
Timing utilities

Decorators and a context manager for measuring and logging operation durations
"""

import asyncio
import functools
import time
from collections.abc import Callable
from typing import Any, Optional

from .logger import StructuredLogger


class PerformanceTimer:
    """Context manager for timing code blocks (durations in ms)"""

    def __init__(
        self,
        operation_name: str,
        logger: Optional[StructuredLogger] = None,
        verbose: bool = False,
    ):
        """
        Args:
            operation_name: Name of the operation being timed
            logger: Where completion/failure lines go when verbose
            verbose: Whether to log timing info
        """
        self.operation_name = operation_name
        self.logger = logger
        self.verbose = verbose
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        if self.verbose and self.logger is not None:
            duration = round(self.duration_ms)
            if exc_type is None:
                self.logger.info(f"{self.operation_name} completed", {"duration": duration})
            else:
                self.logger.error(f"{self.operation_name} failed", exc_val, {"duration": duration})

        return False  # Don't suppress exceptions


def measure_time(operation_name: str | None = None, logger: Optional[StructuredLogger] = None):
    """
    Decorator to measure and log function execution time

    Works on plain functions and coroutine functions.

    Args:
        operation_name: Custom name for the operation (defaults to function name)
        logger: StructuredLogger to report to (defaults to a fresh one)

    Example:
        @measure_time("scrape_product")
        async def scrape_product(url):
            ...
    """

    def decorator(func: Callable) -> Callable:
        name = operation_name or func.__name__
        log = logger or StructuredLogger()

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                return await log.measure_async(name, lambda: func(*args, **kwargs))

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            with PerformanceTimer(name, logger=log, verbose=True):
                return func(*args, **kwargs)

        return wrapper

    return decorator
