"""
Database query metrics

Records query durations in a bounded buffer and flags slow queries
"""

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..common.logger import StructuredLogger
from ..common.monitoring import PerformanceTimer

COMPONENT = "DatabaseMetrics"

SLOW_QUERY_THRESHOLD_MS = 1000


@dataclass(frozen=True)
class QueryMetric:
    operation_name: str
    duration_ms: float
    is_slow_query: bool
    timestamp: float  # epoch ms
    rows_affected: Optional[int] = None


@dataclass(frozen=True)
class QueryStats:
    avg_duration_ms: int
    max_duration_ms: float
    slow_query_count: int
    total_query_count: int


class DatabaseMetrics:
    """Passive observer of query timings (oldest entries evicted first)"""

    def __init__(
        self,
        logger: Optional[StructuredLogger] = None,
        max_metrics: int = 100,
        slow_query_threshold_ms: float = SLOW_QUERY_THRESHOLD_MS,
    ):
        self.logger = logger or StructuredLogger()
        self.max_metrics = max_metrics
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self._metrics: deque[QueryMetric] = deque(maxlen=max_metrics)

    def record_query(
        self,
        operation_name: str,
        duration_ms: float,
        rows_affected: Optional[int] = None,
    ) -> QueryMetric:
        is_slow_query = duration_ms > self.slow_query_threshold_ms
        metric = QueryMetric(
            operation_name=operation_name,
            duration_ms=duration_ms,
            rows_affected=rows_affected,
            is_slow_query=is_slow_query,
            timestamp=time.time() * 1000,
        )
        self._metrics.append(metric)

        if is_slow_query:
            self.logger.warn(
                f"Slow query detected: {operation_name}",
                {"component": COMPONENT, "duration_ms": duration_ms, "rows_affected": rows_affected},
            )
        return metric

    @contextmanager
    def track(self, operation_name: str):
        """
        Time the enclosed block and record it, even when it raises

        Example:
            with db_metrics.track("items.insert") as timer:
                cursor.execute(sql, params)
                timer.rows_affected = cursor.rowcount
        """
        timer = PerformanceTimer(operation_name)
        timer.rows_affected = None
        try:
            with timer:
                yield timer
        finally:
            self.record_query(operation_name, round(timer.duration_ms, 2), timer.rows_affected)

    def get_stats(self, operation_name: Optional[str] = None) -> QueryStats:
        metrics = [m for m in self._metrics if operation_name is None or m.operation_name == operation_name]
        if not metrics:
            return QueryStats(avg_duration_ms=0, max_duration_ms=0, slow_query_count=0, total_query_count=0)

        durations = [m.duration_ms for m in metrics]
        return QueryStats(
            avg_duration_ms=round(sum(durations) / len(durations)),
            max_duration_ms=max(durations),
            slow_query_count=sum(1 for m in metrics if m.is_slow_query),
            total_query_count=len(metrics),
        )

    def get_slowest_operations(self, limit: int = 10) -> list[QueryMetric]:
        return sorted(self._metrics, key=lambda m: m.duration_ms, reverse=True)[:limit]

    def get_report(self) -> str:
        operations: dict[str, list[QueryMetric]] = {}
        for metric in self._metrics:
            operations.setdefault(metric.operation_name, []).append(metric)

        lines = ["DATABASE METRICS REPORT", "=" * 50, ""]
        for op_name, op_metrics in operations.items():
            durations = [m.duration_ms for m in op_metrics]
            avg = sum(durations) / len(durations)
            slow_count = sum(1 for m in op_metrics if m.is_slow_query)
            last = datetime.fromtimestamp(op_metrics[-1].timestamp / 1000, tz=timezone.utc)
            lines += [
                f"Operation: {op_name}",
                f"  Average: {avg:.2f}ms",
                f"  Max: {max(durations)}ms",
                f"  Slow Queries: {slow_count}/{len(op_metrics)}",
                f"  Last Query: {last.isoformat(timespec='milliseconds').replace('+00:00', 'Z')}",
                "",
            ]
        return "\n".join(lines) + "\n"

    def clear(self) -> None:
        self._metrics.clear()

    def get_all_metrics(self) -> list[QueryMetric]:
        return list(self._metrics)
