"""Conduit Core Module - configuration and logging."""

from conduit.core.config import (
    ConduitConfig,
    EngineConfig,
    LoggingConfig,
    LogLevel,
    MonitoringConfig,
    NotificationConfig,
)
from conduit.core.logging import setup_logging

__all__ = [
    "ConduitConfig",
    "EngineConfig",
    "LoggingConfig",
    "LogLevel",
    "MonitoringConfig",
    "NotificationConfig",
    "setup_logging",
]
