"""Core module initialization."""

from .config_manager import ConfigManager, VirtSecretConfig
from .logging_config import setup_logging, get_logger

__all__ = [
    "ConfigManager",
    "VirtSecretConfig",
    "setup_logging",
    "get_logger",
]
