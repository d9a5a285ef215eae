"""Core utility modules for apimirror."""

from .config import CONFIG_DIR, CONFIG_FILE_YAML, DEFAULT_MIRROR_CONFIG, Config
from .logging_config import (
    LoggingConfig,
    MirrorLoggingManager,
    SensitiveDataFilter,
    get_logging_manager,
    setup_logging,
)

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE_YAML",
    "DEFAULT_MIRROR_CONFIG",
    "Config",
    "LoggingConfig",
    "MirrorLoggingManager",
    "SensitiveDataFilter",
    "get_logging_manager",
    "setup_logging",
]
