"""
Configuration management for VirtSecret.

Handles loading, validation, and access to configuration settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator, ValidationError, ConfigDict

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageType(str, Enum):
    """Supported secret storage backends."""
    MEMORY = "memory"
    FILE = "file"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "json"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'virtsecret.secrets.vault': 'DEBUG'}"
    )


class StorageConfig(BaseModel):
    """Persistent secret storage configuration."""
    type: StorageType = StorageType.MEMORY
    path: Optional[str] = Field(
        default=None,
        description="Directory holding <uuid>.xml and <uuid>.base64 files (file storage)"
    )

    @model_validator(mode="after")
    def validate_path(self) -> "StorageConfig":
        """File storage needs a directory."""
        if self.type == StorageType.FILE and not self.path:
            raise ValueError("storage.path is required for file storage")
        return self


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration."""
    enabled: bool = True


class VirtSecretConfig(BaseModel):
    """Main VirtSecret configuration schema."""

    version: str = Field(default="0.1.0", description="Configuration version")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    storage: StorageConfig = Field(default_factory=StorageConfig)

    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    read_only: bool = Field(
        default=False,
        description="Deny define, set-value, get-value and undefine"
    )

    max_value_size: int = Field(
        default=64 * 1024,
        gt=0,
        description="Largest accepted secret value in bytes"
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version format."""
        parts = v.split(".")
        if len(parts) != 3:
            raise ValueError("Version must be in format x.y.z")
        for part in parts:
            if not part.isdigit():
                raise ValueError("Version components must be numeric")
        return v

    model_config = ConfigDict(use_enum_values=True)


class ConfigManager:
    """
    Manages VirtSecret configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. Explicit overrides
    2. Environment variables (VIRTSECRET_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[VirtSecretConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> VirtSecretConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Dictionary of explicit overrides

        Returns:
            Validated VirtSecretConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.info("Loading VirtSecret configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} explicit overrides")

        try:
            self._config = VirtSecretConfig(**config_dict)
            logger.info("Configuration validated successfully")
            self._log_configuration()
            return self._config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        if log_level := os.getenv("VIRTSECRET_LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv("VIRTSECRET_LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file
        if log_format := os.getenv("VIRTSECRET_LOG_FORMAT"):
            config.setdefault("logging", {})["format"] = log_format

        if storage_type := os.getenv("VIRTSECRET_STORAGE"):
            config.setdefault("storage", {})["type"] = storage_type.lower()
        if storage_path := os.getenv("VIRTSECRET_STORAGE_PATH"):
            config.setdefault("storage", {})["path"] = storage_path

        if read_only := os.getenv("VIRTSECRET_READ_ONLY"):
            config["read_only"] = read_only.lower() in ['true', '1', 'yes']
        if max_value_size := os.getenv("VIRTSECRET_MAX_VALUE_SIZE"):
            config["max_value_size"] = int(max_value_size)

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _log_configuration(self) -> None:
        """Log the loaded configuration."""
        if not self._config:
            return

        logger.info(f"Active configuration: {json.dumps(self._config.model_dump(), indent=2)}")

    def get_config(self) -> VirtSecretConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> VirtSecretConfig:
        """Reload configuration from the same sources."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file)
