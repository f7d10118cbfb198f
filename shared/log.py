#!/usr/bin/env python3
"""
Echo demo logging configuration

Centralized logging setup for consistent formatting across the client and
the server. Supports both development (coloured console) and production
(plain console + file) modes.

Usage:
    from shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Starting server...")
    logger.error("Connection failed", extra={"peer": "127.0.0.1:51234", "attempt": 2})
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Optional
import os


# ========================================
#           LOGGING FORMATTERS
# ========================================

def _context_prefix(record: logging.LogRecord) -> str:
    """Build the '[peer=... conn=... attempt=...] ' prefix from extra fields."""
    context = []

    if getattr(record, 'peer', None):
        context.append(f"peer={record.peer}")
    if getattr(record, 'connection_id', None):
        context.append(f"conn={record.connection_id}")
    if getattr(record, 'attempt', None) is not None:
        context.append(f"attempt={record.attempt}")

    return f"[{' '.join(context)}] " if context else ""


def _with_context(record: logging.LogRecord) -> logging.LogRecord:
    """Return a copy of `record` whose message starts with the context prefix."""
    prefix = _context_prefix(record)
    if not prefix:
        return record
    # Other handlers see the same record, so never modify it in place
    record = logging.makeLogRecord(record.__dict__)
    record.msg = f"{prefix}{record.getMessage()}"
    record.args = None
    return record


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output with connection context"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        record = logging.makeLogRecord(_with_context(record).__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


class GenericFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        return super().format(_with_context(record))


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance

    Examples:
        logger = get_logger(__name__)
        logger.info("Server starting")

        # With context
        logger.warning("Connection lost", extra={
            "peer": "127.0.0.1:51234",
            "connection_id": "a1b2c3",
        })
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def set_level(level: str) -> None:
    """Apply a log level to every logger configured through this module."""
    log_level = _get_log_level(level)
    logging.getLogger().setLevel(log_level)
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(log_level)


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    # Determine log level
    log_level = _get_log_level(level)
    logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    if _is_development():
        _add_console_handler(logger, colored=True)
    else:
        # Production: Clean console + file logging
        _add_console_handler(logger, colored=False)
    if _file_logging_enabled():
        _add_file_handler(logger)

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    level = level or os.getenv('ECHO_LOG_LEVEL')
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    # Default based on environment
    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development']


def _file_logging_enabled() -> bool:
    return os.getenv('ECHO_LOG_FILE', '1').lower() not in ['0', 'false', 'no', 'off'] and 'pytest' not in sys.modules


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt='[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stdout)

    if colored and _supports_color():
        formatter = ColoredFormatter(
            fmt=fmt,
            datefmt='%H:%M:%S'
        )
    else:
        formatter = GenericFormatter(
            fmt=fmt,
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger) -> None:
    """Add file handler for production logging"""

    # Create logs directory
    log_dir = Path(os.getenv('ECHO_LOG_DIR', 'logs'))
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / "echo.log"
    handler = logging.FileHandler(log_file)

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    # stdout must be a terminal
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    # Windows-specific check
    if sys.platform == "win32":
        # On modern Windows terminals, ANSI colors are supported
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode" or "WindowsTerminal" in os.getenv("TERM", "")

    return True
# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.

    Args:
        level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
    """
    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)
    if level:
        set_level(level)

