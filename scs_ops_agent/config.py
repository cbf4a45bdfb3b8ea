"""Configuration management for SCS Ops Agent."""

import os
from typing import Optional
from dataclasses import dataclass, field

from scs_ops_agent.exceptions import ConfigurationError


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class TimeoutConfig:
    """Per-operation timeout budgets and polling cadence, in seconds."""
    create_timeout: float = 20 * 60
    update_timeout: float = 30 * 60
    delete_timeout: float = 20 * 60
    read_timeout: float = 60
    poll_interval: float = 10.0


@dataclass
class Config:
    """Main configuration class."""
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        config = cls()

        # Logging config
        config.logging.level = os.getenv('LOG_LEVEL', config.logging.level)
        config.logging.file_path = os.getenv('LOG_FILE_PATH')

        # Timeout config
        config.timeouts.create_timeout = _seconds_from_env('SCS_CREATE_TIMEOUT', config.timeouts.create_timeout)
        config.timeouts.update_timeout = _seconds_from_env('SCS_UPDATE_TIMEOUT', config.timeouts.update_timeout)
        config.timeouts.delete_timeout = _seconds_from_env('SCS_DELETE_TIMEOUT', config.timeouts.delete_timeout)
        config.timeouts.read_timeout = _seconds_from_env('SCS_READ_TIMEOUT', config.timeouts.read_timeout)
        config.timeouts.poll_interval = _seconds_from_env('SCS_POLL_INTERVAL', config.timeouts.poll_interval)

        return config


def _seconds_from_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None:
        return default

    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number of seconds, got '{raw}'", config_key=key)

    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {value}", config_key=key)

    return value


# Global configuration instance
config = Config.from_env()
