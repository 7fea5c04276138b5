"""
Comms Inbox Core

Shared infrastructure: settings, logging and time helpers.
"""

from .config import InboxSettings, get_settings, reset_settings
from .formatters import (
    format_epoch_ms,
    from_epoch_ms,
    get_utc_now,
    get_utc_timestamp,
    to_epoch_ms,
    utc_now_ms,
)
from .logging import get_logger, reset_logging, set_log_level

__all__ = [
    # Config
    "InboxSettings",
    "get_settings",
    "reset_settings",
    # Logging
    "get_logger",
    "set_log_level",
    "reset_logging",
    # Time
    "get_utc_now",
    "get_utc_timestamp",
    "to_epoch_ms",
    "from_epoch_ms",
    "utc_now_ms",
    "format_epoch_ms",
]
