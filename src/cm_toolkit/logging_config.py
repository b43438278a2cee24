"""Logging configuration for CM Toolkit.

Provides centralized logging setup with file and console handlers.
Log files are stored in the application's config directory.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "cm_toolkit.log"


def setup_logging(debug: bool = False, log_dir: Optional[Path] = None) -> logging.Logger:
    """Configure application-wide logging.

    Sets up logging to a file and, in debug mode, to the console.
    The log file is stored in the toolkit's config directory unless
    ``log_dir`` is given.

    Args:
        debug: If True, also log to console at DEBUG level
        log_dir: Optional directory for the log file

    Returns:
        The root logger for the application
    """
    if log_dir is None:
        # Imported here: the config package itself logs through this module
        from .config.paths import GamePaths
        log_dir = GamePaths.ensure_config_dir()
    else:
        log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    logger = logging.getLogger("cm_toolkit")
    logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    # File handler - always logs DEBUG and above
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    file_handler.setFormatter(file_formatter)
    logger.addHandler(file_handler)

    # Console handler - only in debug mode
    if debug:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)
        console_formatter = logging.Formatter(
            "%(levelname)s - %(name)s - %(message)s"
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger for a specific module.

    Args:
        name: Module name (e.g., 'module_decoder', 'downgrader')

    Returns:
        A logger instance for the module
    """
    return logging.getLogger(f"cm_toolkit.{name}")
