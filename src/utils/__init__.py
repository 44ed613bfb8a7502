"""Utility modules for configuration, logging, time and errors."""

from .clock import utc_now, to_iso_utc
from .config import AppConfig, get_config, load_config, reset_config
from .logger import (
    get_logger,
    log_execution_time,
    set_log_level,
    log_exception,
)

__all__ = [
    # Configuration
    "AppConfig",
    "get_config",
    "load_config",
    "reset_config",
    # Logging
    "get_logger",
    "log_execution_time",
    "set_log_level",
    "log_exception",
    # Time
    "utc_now",
    "to_iso_utc",
]
