"""
Logging configuration for Mailwatch.

Console output for CLI runs, an optional rotating log file for scheduled
watch renewals, and quieter defaults for the HTTP, OAuth and SDK libraries
that log every request.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Optional

from .exceptions import ConfigurationError


LOG_FORMATS = {
    "standard": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s - %(message)s",
    # CLI output: the level and message only
    "short": "%(levelname)s: %(message)s",
}

# Per-request chatter from requests/google-auth/anthropic; tokens can show up at DEBUG
NOISY_LOGGERS: Dict[str, int] = {
    "urllib3": logging.WARNING,
    "google.auth": logging.WARNING,
    "httpx": logging.WARNING,
    "anthropic": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
}


def _parse_level(log_level: str) -> int:
    level = logging.getLevelName(str(log_level).upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {log_level!r}")
    return level


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_to_console: bool = True,
    log_format: str = "standard",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    quiet_loggers: Optional[Dict[str, int]] = None,
):
    """
    Configure the root logger.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to a rotating log file (None = no file logging)
        log_to_console: Whether to log to stderr
        log_format: One of LOG_FORMATS ('standard', 'detailed', 'short')
        max_bytes: Rotate the log file at this size
        backup_count: Rotated files to keep
        quiet_loggers: Logger name -> level overrides (default: NOISY_LOGGERS)

    Raises:
        ConfigurationError: Unknown log level
    """
    level = _parse_level(log_level)
    formatter = logging.Formatter(LOG_FORMATS.get(log_format, LOG_FORMATS["standard"]), datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Third-party loggers stay at or above both their quiet level and the root level
    for name, quiet_level in (quiet_loggers if quiet_loggers is not None else NOISY_LOGGERS).items():
        logging.getLogger(name).setLevel(max(quiet_level, level))

    logging.getLogger(__name__).debug(f"Logging configured: level={log_level}, file={log_file}, format={log_format}")
