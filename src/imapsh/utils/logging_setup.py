"""
Logging setup for the imapsh mailbox browser.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "imapsh"


def default_log_dir() -> Path:
    """
    Get the default log directory for the current platform.

    Returns:
        Path: Log directory (not created).
    """
    if sys.platform.startswith("linux"):
        return Path.home() / ".local" / "share" / "imapsh" / "logs"
    return Path.home() / ".imapsh" / "logs"


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    console_output: bool = False
) -> None:
    """
    Set up application logging with a rotating file handler and an optional
    console handler.

    The interactive shell owns stdout, so console output is off by default
    and goes to stderr when enabled.

    Args:
        log_level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL').
        log_file: Path to log file. If None, uses default location.
        console_output: Whether to also log to stderr.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(numeric_level)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file is None:
        log_file = default_log_dir() / "imapsh.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Rotating file handler (max 10MB, keep 5 backups)
    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.info("imapsh - Logging initialized")
    logger.info(f"Log level: {log_level}")
    logger.info(f"Log file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (typically __name__).

    Returns:
        logging.Logger: Logger instance below the imapsh namespace.
    """
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
