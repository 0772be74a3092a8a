"""Environment variable validation and management."""

import os
import logging
from typing import Dict

logger = logging.getLogger(__name__)

class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass

_DEFAULTS: Dict[str, str] = {
    "DB_PATH": "data.db",
    "CLEANUP_DAYS": "90",
    "THINKING_DELAY_MIN_MS": "1000",
    "THINKING_DELAY_MAX_MS": "3000",
    "CLEANUP_ON_STARTUP": "true",
}

_NON_NEGATIVE_INTS = ("CLEANUP_DAYS", "THINKING_DELAY_MIN_MS", "THINKING_DELAY_MAX_MS")


def validate_environment() -> None:
    """Apply defaults and validate the assistant's environment variables.

    Raises EnvironmentError if validation fails.
    """
    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in _DEFAULTS.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    for var in _NON_NEGATIVE_INTS:
        if get_env_int(var) < 0:
            raise EnvironmentError(f"{var} must not be negative: {os.getenv(var)}")

    low = get_env_int("THINKING_DELAY_MIN_MS")
    high = get_env_int("THINKING_DELAY_MAX_MS")
    if low > high:
        raise EnvironmentError(
            f"THINKING_DELAY_MIN_MS ({low}) must not exceed THINKING_DELAY_MAX_MS ({high})"
        )

def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}

def get_env_int(name: str, default: int = 0) -> int:
    """Get integer value from environment variable."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        raise EnvironmentError(f"Invalid integer for {name}: {value}") from None

def thinking_delay_range() -> tuple:
    """Configured thinking delay bounds in seconds."""
    low = get_env_int("THINKING_DELAY_MIN_MS", 1000)
    high = get_env_int("THINKING_DELAY_MAX_MS", 3000)
    return low / 1000.0, high / 1000.0
