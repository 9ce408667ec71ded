"""
SessionBridge logging configuration.

Centralized logger setup with optional file rotation and stderr output.
Level and directory come from environment variables.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level() -> int:
    """
    Get log level from SESSIONBRIDGE_LOG_LEVEL, defaulting to INFO.

    Valid values: DEBUG, INFO, WARNING, ERROR, CRITICAL
    """
    level_name = os.getenv("SESSIONBRIDGE_LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(level_name, logging.INFO)


def get_log_directory() -> Path:
    """
    Get the log directory path.

    Default: ~/.config/opencode/logs/
    Can be overridden with SESSIONBRIDGE_LOG_DIR.
    """
    log_dir = os.getenv("SESSIONBRIDGE_LOG_DIR")
    if log_dir:
        return Path(log_dir).expanduser()
    return Path.home() / ".config" / "opencode" / "logs"


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 2,
    console_output: bool = False,
) -> logging.Logger:
    """
    Set up a logger with optional file rotation and console output.

    Child loggers (``sessionbridge.x``) normally carry no handlers of their own
    and propagate to the ``sessionbridge`` logger configured by the CLI.

    Args:
        name: Logger name (e.g., 'sessionbridge.coordinator')
        log_file: Filename inside the log directory, or None for no file output
        max_bytes: Maximum size of the log file before rotation
        backup_count: Number of rotated files to keep
        console_output: Whether to also write to stderr

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        # Keep level in sync with env var, but avoid duplicating handlers.
        logger.setLevel(get_log_level())
        return logger

    logger.setLevel(get_log_level())

    if not log_file and not console_output:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_file:
        try:
            log_dir = get_log_directory()
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_dir / log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            # File logging is optional; stderr still works.
            print(f"Warning: Failed to set up file logging: {e}", file=sys.stderr)

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(get_log_level())
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    logger.propagate = False
    return logger
