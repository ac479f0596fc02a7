"""Core RoleKeeper utilities.

This module exports configuration, logging, clock and password helpers for use
throughout the application.
"""

from rolekeeper.core.clock import Clock, FixedClock, SystemClock
from rolekeeper.core.config import Settings, get_settings
from rolekeeper.core.logging import (
    LoggingContext,
    bind_correlation_id,
    clear_context,
    configure_logging,
    get_logger,
)
from rolekeeper.core.passwords import hash_password, verify_password

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "LoggingContext",
    "bind_correlation_id",
    "clear_context",
    "hash_password",
    "verify_password",
]
