"""Logging configuration for apimirror export and import runs."""

import json
import logging
import logging.handlers
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional


class LogLevel(str, Enum):
    """Log levels for configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log output formats."""

    SIMPLE = "simple"
    JSON = "json"


# Bearer tokens and SAS signatures on pre-signed definition links
DEFAULT_SENSITIVE_PATTERNS = [
    r"(?<=Bearer )[A-Za-z0-9\-_.~+/]+=*",
    r"(?<=[?&]sig=)[^&\s\"']+",
    r"(?<=access_token=)[^&\s\"']+",
]


@dataclass
class LoggingConfig:
    """Configuration for the logging system."""

    level: LogLevel = LogLevel.WARNING
    format_type: LogFormat = LogFormat.SIMPLE
    enable_console_logging: bool = True
    enable_file_logging: bool = False
    log_directory: str = "~/.apimirror/logs"
    log_filename: str = "apimirror.log"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_colors: bool = True
    log_http_requests: bool = False
    sensitive_data_patterns: List[str] = field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_PATTERNS)
    )


class SensitiveDataFilter(logging.Filter):
    """Filter to redact sensitive data from log messages."""

    def __init__(self, patterns: List[str]) -> None:
        """
        Initialize the filter with sensitive data patterns.

        Args:
            patterns: List of regex patterns matching the text to redact
        """
        super().__init__()
        self.patterns = patterns
        self.compiled_patterns = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place; never drops it."""
        if isinstance(record.msg, str):
            record.msg = self._redact_sensitive_data(record.msg)

        if record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_sensitive_data(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _redact_sensitive_data(self, text: str) -> str:
        for pattern in self.compiled_patterns:
            text = pattern.sub("[REDACTED]", text)
        return text


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter with color support."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and self._supports_color()

    def _supports_color(self) -> bool:
        """Check if the terminal supports colors."""
        return (
            hasattr(sys.stderr, "isatty")
            and sys.stderr.isatty()
            and os.environ.get("TERM") != "dumb"
        )

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            reset = self.COLORS["RESET"]
            formatted = (
                f"{color}[{timestamp}] {record.levelname:<8}{reset} - "
                f"{record.name} - {record.getMessage()}"
            )
        else:
            formatted = f"[{timestamp}] {record.levelname:<8} - {record.name} - {record.getMessage()}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"
        return formatted


class MirrorLoggingManager:
    """
    Centralized logging setup for the ``apimirror`` logger tree.

    Every module logs through ``logging.getLogger(__name__)``; this manager
    only attaches handlers, formatters and the redaction filter once.
    """

    ROOT_LOGGER = "apimirror"

    def __init__(self, config: Optional[LoggingConfig] = None):
        self.config = config or LoggingConfig()
        self._handlers: List[logging.Handler] = []
        self._handlers_configured = False

    def setup_logging(self) -> None:
        """Set up logging configuration for all components."""
        if self._handlers_configured:
            return

        root_logger = logging.getLogger(self.ROOT_LOGGER)
        root_logger.setLevel(getattr(logging, self.config.level.value))
        root_logger.propagate = False

        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)

        if self.config.enable_console_logging:
            self._handlers.append(self._create_console_handler())

        if self.config.enable_file_logging:
            self._handlers.append(self._create_file_handler())

        for handler in self._handlers:
            root_logger.addHandler(handler)

        self._configure_third_party_logging()
        self._handlers_configured = True

    def _create_console_handler(self) -> logging.Handler:
        # stderr keeps stdout free for the run summary
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(getattr(logging, self.config.level.value))

        formatter: logging.Formatter
        if self.config.format_type == LogFormat.JSON:
            formatter = StructuredFormatter()
        else:
            formatter = ColoredConsoleFormatter(use_colors=self.config.console_colors)

        handler.setFormatter(formatter)
        handler.addFilter(SensitiveDataFilter(self.config.sensitive_data_patterns))
        return handler

    def _create_file_handler(self) -> logging.Handler:
        """Create rotating file handler."""
        log_dir = Path(self.config.log_directory).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            filename=str(log_dir / self.config.log_filename),
            maxBytes=self.config.max_file_size_mb * 1024 * 1024,
            backupCount=self.config.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(StructuredFormatter())
        handler.addFilter(SensitiveDataFilter(self.config.sensitive_data_patterns))
        return handler

    def _configure_third_party_logging(self) -> None:
        """Reduce noise from the HTTP stack."""
        level = logging.DEBUG if self.config.log_http_requests else logging.WARNING
        for logger_name in ("urllib3", "requests"):
            logging.getLogger(logger_name).setLevel(level)

    def shutdown(self) -> None:
        """Detach and close the handlers this manager installed."""
        root_logger = logging.getLogger(self.ROOT_LOGGER)
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []
        self._handlers_configured = False


# Global logging manager instance
_global_logging_manager: Optional[MirrorLoggingManager] = None


def get_logging_manager() -> MirrorLoggingManager:
    """Get the global logging manager instance."""
    global _global_logging_manager
    if _global_logging_manager is None:
        _global_logging_manager = MirrorLoggingManager()
    return _global_logging_manager


def setup_logging(
    verbose: bool = False, log_file: Optional[str] = None, json_format: bool = False
) -> MirrorLoggingManager:
    """
    Configure logging for a CLI invocation.

    Args:
        verbose: Log at DEBUG instead of WARNING
        log_file: Optional path of a rotating JSON log file
        json_format: Emit JSON records on the console too

    Returns:
        The installed logging manager
    """
    global _global_logging_manager
    if _global_logging_manager is not None:
        _global_logging_manager.shutdown()

    config = LoggingConfig(
        level=LogLevel.DEBUG if verbose else LogLevel.WARNING,
        format_type=LogFormat.JSON if json_format else LogFormat.SIMPLE,
    )
    if log_file:
        path = Path(log_file).expanduser()
        config.enable_file_logging = True
        config.log_directory = str(path.parent)
        config.log_filename = path.name

    _global_logging_manager = MirrorLoggingManager(config)
    _global_logging_manager.setup_logging()
    return _global_logging_manager
