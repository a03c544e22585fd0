"""
Database error classification and query metrics
"""

from .errors import DbError, DbErrorHandler, DbErrorInfo, extract_field_name
from .metrics import DatabaseMetrics, QueryMetric, QueryStats

__all__ = [
    "DbError",
    "DbErrorHandler",
    "DbErrorInfo",
    "extract_field_name",
    "DatabaseMetrics",
    "QueryMetric",
    "QueryStats",
]
