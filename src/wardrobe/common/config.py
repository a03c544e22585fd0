"""
Configuration for the resilience core
Loaded from a .env file (if present) and from environment variables
"""

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..exceptions import ConfigurationError

# .env in the working directory wins, then the one next to the package
for env_file in (Path.cwd() / ".env", Path(__file__).resolve().parents[3] / ".env"):
    if env_file.exists():
        load_dotenv(env_file)
        break


def get_environment() -> str:
    """Current environment name (APP_ENV, falling back to NODE_ENV)"""
    return (os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "production").lower()


def is_development() -> bool:
    return get_environment() == "development"


def _get_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid integer for {key}: {raw!r}", config_key=key, original_error=e
        ) from e


def _get_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid number for {key}: {raw!r}", config_key=key, original_error=e
        ) from e


def _get_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def get_config() -> dict[str, Any]:
    """Re-read every section from the environment"""
    development = is_development()
    return {
        "environment": get_environment(),
        "logging": {
            "level": os.getenv("LOG_LEVEL", "DEBUG" if development else "INFO").upper(),
            "buffer_size": _get_int("LOG_BUFFER_SIZE", 100),
            "development": development,
        },
        "retry": {
            "max_retries": _get_int("RETRY_MAX_RETRIES", 3),
            "initial_delay_ms": _get_float("RETRY_INITIAL_DELAY_MS", 100),
            "max_delay_ms": _get_float("RETRY_MAX_DELAY_MS", 5000),
            "backoff_multiplier": _get_float("RETRY_BACKOFF_MULTIPLIER", 2),
            "jitter": _get_bool("RETRY_JITTER", True),
        },
        "circuit_breaker": {
            "failure_threshold": _get_int("CIRCUIT_FAILURE_THRESHOLD", 5),
            "success_threshold": _get_int("CIRCUIT_SUCCESS_THRESHOLD", 2),
            "timeout_ms": _get_float("CIRCUIT_TIMEOUT_MS", 30000),
        },
        "metrics": {
            "slow_query_threshold_ms": _get_float("SLOW_QUERY_THRESHOLD_MS", 1000),
            "max_entries": _get_int("METRICS_MAX_ENTRIES", 100),
        },
    }


_config = get_config()

LOGGING_CONFIG = _config["logging"]
RETRY_CONFIG = _config["retry"]
CIRCUIT_BREAKER_CONFIG = _config["circuit_breaker"]
METRICS_CONFIG = _config["metrics"]
