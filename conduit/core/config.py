"""
Conduit Configuration

Settings for the workflow engine and its observers:
- Environment-based configuration (CONDUIT_ prefix)
- Type-safe settings with Pydantic
- JSON file loading and saving
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class LogLevel(str, Enum):
    """Logging levels for Conduit."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EngineConfig(BaseModel):
    """Configuration for the step graph executor."""
    strict_ordering: bool = False  # topological order + cycle rejection
    max_rollbacks: int = 3
    default_http_timeout: float = 30.0
    max_concurrent_executions: int = 100


class NotificationConfig(BaseModel):
    """Configuration for the notification hub."""
    enabled: bool = True
    throttle_seconds: float = 5.0
    max_notifications: int = 10
    auto_dismiss_seconds: float = 10.0


class MonitoringConfig(BaseModel):
    """Configuration for execution monitoring."""
    enabled: bool = True
    timeout_threshold_seconds: float = 300.0
    memory_alert_ratio: float = 0.8
    degraded_failure_ratio: float = 0.5


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""
    level: LogLevel = LogLevel.INFO
    format: Literal["json", "text"] = "json"


class ConduitConfig(BaseSettings):
    """
    Main Conduit configuration.

    Loads configuration from environment variables and/or a JSON file.
    Environment variables are prefixed with CONDUIT_
    (e.g., CONDUIT_ENGINE__STRICT_ORDERING=true).
    """

    engine: EngineConfig = Field(default_factory=EngineConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "env_prefix": "CONDUIT_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @classmethod
    def from_file(cls, config_path: Path) -> "ConduitConfig":
        """Load configuration from a JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = json.load(f)

        return cls(**config_data)

    def to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)
