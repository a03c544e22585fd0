"""
Structured logging service

Builds timestamped LogEntry records with context and error metadata, writes a
color-coded console line in development and buffers entries for an external sink.

Example:
    logger = StructuredLogger()
    logger.info("Item saved", {"user_id": user_id, "item_id": item_id})
    logger.error("Price scrape failed", exc, {"retailer": "nike"})
"""

import logging
import random
import string
import sys
import time
import traceback
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Optional, TypeVar

from . import config

T = TypeVar("T")

_stdlib_logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}

_COLORS = {
    LogLevel.DEBUG: "\x1b[36m",  # cyan
    LogLevel.INFO: "\x1b[32m",  # green
    LogLevel.WARN: "\x1b[33m",  # yellow
    LogLevel.ERROR: "\x1b[31m",  # red
    LogLevel.CRITICAL: "\x1b[41m",  # red background
}
_RESET = "\x1b[0m"


@dataclass(frozen=True)
class ErrorInfo:
    name: str
    message: str
    stack: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: LogLevel
    message: str
    context: Optional[Mapping[str, Any]] = None
    error: Optional[ErrorInfo] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "message": self.message,
        }
        if self.context is not None:
            data["context"] = dict(self.context)
        if self.error is not None:
            data["error"] = {k: v for k, v in vars(self.error).items() if v is not None}
        return data


def _safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return f"<unrepresentable {type(value).__name__}>"


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Install a single console handler on the package logger (idempotent)"""
    root = logging.getLogger("wardrobe")
    if level is None:
        level = config.get_config()["logging"]["level"]
    root.setLevel(level)
    if not any(getattr(h, "_wardrobe_console", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._wardrobe_console = True
        root.addHandler(handler)
    return root


class StructuredLogger:
    """Leveled, contextual logger with an in-memory buffer.

    Logging calls never raise: rendering problems degrade to placeholders and
    sink failures are reported on stderr.
    """

    def __init__(
        self,
        development: Optional[bool] = None,
        buffer_size: int = 100,
        sink: Optional[Callable[[list[LogEntry]], None]] = None,
        console: Optional[logging.Logger] = None,
    ):
        """
        Args:
            development: Console output and stack traces (default from APP_ENV)
            buffer_size: Entries kept before a flush
            sink: Receives each flushed batch (default: a one-line stdlib log)
            console: stdlib logger used as the console sink
        """
        self.development = config.is_development() if development is None else development
        self.buffer_size = buffer_size
        self.sink = sink
        self.console = console or logging.getLogger("wardrobe.structured")
        self._buffer: list[LogEntry] = []
        self._lock = Lock()
        self.flush_count = 0

    @classmethod
    def from_config(cls, **kwargs) -> "StructuredLogger":
        settings = config.get_config()["logging"]
        kwargs.setdefault("development", settings["development"])
        kwargs.setdefault("buffer_size", settings["buffer_size"])
        return cls(**kwargs)

    # Public API

    def debug(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._log(LogLevel.INFO, message, context)

    def warn(self, message: str, context: Optional[Mapping[str, Any]] = None) -> None:
        self._log(LogLevel.WARN, message, context)

    warning = warn

    def error(
        self,
        message: str,
        error_or_context: BaseException | Mapping[str, Any] | None = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._log_with_error(LogLevel.ERROR, message, error_or_context, context)

    def critical(
        self,
        message: str,
        error_or_context: BaseException | Mapping[str, Any] | None = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._log_with_error(LogLevel.CRITICAL, message, error_or_context, context)

    @property
    def buffer(self) -> list[LogEntry]:
        """Snapshot of the entries not flushed yet"""
        with self._lock:
            return list(self._buffer)

    def flush(self) -> list[LogEntry]:
        """Hand the buffered entries to the sink and clear the buffer"""
        with self._lock:
            batch = self._buffer
            self._buffer = []
        if not batch:
            return batch
        self.flush_count += 1
        try:
            if self.sink is not None:
                self.sink(batch)
            elif not self.development:
                _stdlib_logger.info(f"[Logger] Flushing {len(batch)} log entries")
        except Exception as e:
            print(f"[Logger] sink failed: {type(e).__name__}: {e}", file=sys.stderr)
        return batch

    # Helpers

    @staticmethod
    def generate_request_id() -> str:
        """Time-based id with a random suffix, for correlating a request's logs"""
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        return f"{int(time.time() * 1000)}-{suffix}"

    async def measure_async(self, label: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Await fn(), logging completion or failure with the duration in ms"""
        start = time.perf_counter()
        try:
            result = await fn()
        except Exception as e:
            duration = round((time.perf_counter() - start) * 1000)
            self.error(f"{label} failed", e, {"duration": duration})
            raise
        duration = round((time.perf_counter() - start) * 1000)
        self.info(f"{label} completed", {"duration": duration})
        return result

    # Internals

    def _log_with_error(
        self,
        level: LogLevel,
        message: str,
        error_or_context: BaseException | Mapping[str, Any] | None,
        context: Optional[Mapping[str, Any]],
    ) -> None:
        if isinstance(error_or_context, BaseException):
            self._log(level, message, context, error_or_context)
        else:
            self._log(level, message, error_or_context)

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: Any = None,
        error: Optional[BaseException] = None,
    ) -> None:
        try:
            entry = self._create_entry(level, message, context, error)
            if self.development:
                self._write_console(entry)
            with self._lock:
                self._buffer.append(entry)
                should_flush = level == LogLevel.CRITICAL or len(self._buffer) >= self.buffer_size
            if should_flush:
                self.flush()
        except Exception as e:
            print(f"[Logger] dropped entry {message!r}: {type(e).__name__}", file=sys.stderr)

    def _create_entry(
        self,
        level: LogLevel,
        message: str,
        context: Any,
        error: Optional[BaseException],
    ) -> LogEntry:
        if context is not None and not isinstance(context, Mapping):
            context = {"value": context}
        return LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            level=level,
            message=str(message),
            context=dict(context) if context is not None else None,
            error=self._extract_error(error) if error is not None else None,
        )

    def _extract_error(self, error: BaseException) -> ErrorInfo:
        stack = None
        if self.development and error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        code = getattr(error, "code", None)
        try:
            error_message = str(error)
        except Exception:
            error_message = _safe_repr(error)
        return ErrorInfo(
            name=type(error).__name__,
            message=error_message,
            stack=stack,
            code=str(code.value if hasattr(code, "value") else code) if code is not None else None,
        )

    def _write_console(self, entry: LogEntry) -> None:
        color = _COLORS[entry.level]
        clock = entry.timestamp.split("T")[1].split(".")[0]
        line = f"{color}[{clock}] {entry.level.value}{_RESET} {entry.message}"
        if entry.error is not None:
            line += f" {entry.error.name}: {entry.error.message}"
            if entry.error.stack:
                line += f"\n{entry.error.stack}"
        if entry.context:
            line += f" Context: {_safe_repr(entry.context)}"
        self.console.log(_STDLIB_LEVELS[entry.level], line)
