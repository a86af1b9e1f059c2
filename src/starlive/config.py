"""
Configuration for StarLive applications.

Dataclass based configuration with per-environment presets, loading from a
dictionary or a JSON file, overrides from `STARLIVE_*` environment
variables and a process-wide current configuration.
"""

import json
import logging
import logging.handlers
import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union


class Environment(Enum):
    """Application environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class LiveConfig:
    """Complete StarLive configuration"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    attribute_prefix: str = "lv"
    page_container_id: str = "lv-page-params"
    event_path: str = "/live/event"
    script_path: str = "/live/starlive.js"
    session_ttl: Optional[int] = 3600
    cleanup_interval: int = 300
    recover_derivation_errors: bool = False

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    custom: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_environment(cls, environment: Environment) -> "LiveConfig":
        """Create configuration for specific environment"""
        config = cls(environment=environment)

        if environment == Environment.DEVELOPMENT:
            config.debug = True
            config.logging.level = "DEBUG"

        elif environment == Environment.TESTING:
            config.session_ttl = None
            config.logging.level = "WARNING"

        elif environment == Environment.PRODUCTION:
            config.debug = False
            config.recover_derivation_errors = True
            config.logging.level = "INFO"

        return config

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "LiveConfig":
        """Create configuration from dictionary; unknown keys are ignored."""
        environment = Environment(config_dict.get("environment", Environment.DEVELOPMENT.value))
        config = cls(environment=environment)

        for key, value in config_dict.items():
            if key in ("environment", "logging"):
                continue
            if hasattr(config, key):
                setattr(config, key, value)

        for key, value in config_dict.get("logging", {}).items():
            if hasattr(config.logging, key):
                setattr(config.logging, key, value)

        return config

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "LiveConfig":
        """Load configuration from a JSON file"""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if config_path.suffix != ".json":
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")
        with open(config_path) as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_environment(cls) -> "LiveConfig":
        """Create configuration from environment variables"""
        environment = Environment(os.getenv("STARLIVE_ENV", "development"))
        config = cls.for_environment(environment)

        if os.getenv("STARLIVE_DEBUG"):
            config.debug = os.getenv("STARLIVE_DEBUG").lower() == "true"

        if os.getenv("STARLIVE_SESSION_TTL"):
            ttl = int(os.getenv("STARLIVE_SESSION_TTL"))
            config.session_ttl = ttl if ttl > 0 else None

        if os.getenv("STARLIVE_ATTRIBUTE_PREFIX"):
            config.attribute_prefix = os.getenv("STARLIVE_ATTRIBUTE_PREFIX")

        if os.getenv("STARLIVE_EVENT_PATH"):
            config.event_path = os.getenv("STARLIVE_EVENT_PATH")

        if os.getenv("STARLIVE_RECOVER_DERIVATION_ERRORS"):
            config.recover_derivation_errors = os.getenv("STARLIVE_RECOVER_DERIVATION_ERRORS").lower() == "true"

        if os.getenv("STARLIVE_LOG_LEVEL"):
            config.logging.level = os.getenv("STARLIVE_LOG_LEVEL").upper()

        return config

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["environment"] = self.environment.value
        return data


def configure_logging(config: LoggingConfig, logger_name: str = "starlive") -> logging.Logger:
    """Apply `config` to the package logger."""
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    formatter = logging.Formatter(config.format)

    for handler in list(logger.handlers):
        if getattr(handler, "_starlive", False):
            logger.removeHandler(handler)

    if config.file_path:
        handler = logging.handlers.RotatingFileHandler(
            config.file_path, maxBytes=config.max_file_size, backupCount=config.backup_count)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler._starlive = True
    logger.addHandler(handler)
    return logger


# Global configuration management
_current_config: Optional[LiveConfig] = None


def set_config(config: LiveConfig):
    """Set the global configuration"""
    global _current_config
    _current_config = config


def get_config() -> LiveConfig:
    """Get the current global configuration"""
    global _current_config

    if _current_config is None:
        _current_config = LiveConfig.from_environment()

    return _current_config


def configure_from_dict(config_dict: Dict[str, Any]) -> LiveConfig:
    config = LiveConfig.from_dict(config_dict)
    set_config(config)
    return config


__all__ = [
    "LiveConfig", "LoggingConfig", "Environment",
    "configure_logging", "set_config", "get_config", "configure_from_dict",
]
