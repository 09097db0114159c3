"""Core module exports."""

from tialaunch.core.errors import (
    ConfigurationError,
    ErrorCode,
    LaunchCancelledError,
    LaunchInProgressError,
    PatternError,
    SpawnError,
    TiaLaunchError,
)
from tialaunch.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Errors
    "TiaLaunchError",
    "ErrorCode",
    "ConfigurationError",
    "PatternError",
    "SpawnError",
    "LaunchCancelledError",
    "LaunchInProgressError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
