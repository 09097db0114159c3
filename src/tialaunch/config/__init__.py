"""Config module exports."""

from tialaunch.config.loader import load_config
from tialaunch.config.models import (
    AgentSettings,
    ExecutorConfig,
    LoggingConfig,
    ReportConfig,
    ServerConfig,
    TiaLaunchConfig,
)

__all__ = [
    "load_config",
    "TiaLaunchConfig",
    "AgentSettings",
    "ExecutorConfig",
    "LoggingConfig",
    "ReportConfig",
    "ServerConfig",
]
