"""Logging setup for Control Risk Analytics.

Engine modules only call ``get_logger(__name__)``. Handlers are attached once,
by the command line, to the ``controlrisk`` package logger so that messages
from every engine end up on the console and in one log file per run.
"""

import logging
from datetime import datetime
from pathlib import Path

from controlrisk.utils.config import AppConfig
from controlrisk.utils.error_handling import ConfigurationError

PACKAGE_LOGGER = "controlrisk"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_log_level(level_name: str) -> int:
    """Map a configured level name such as ``"info"`` to its logging constant.

    Raises:
        ConfigurationError: If the name is not a standard level

    """
    name = level_name.strip().upper()
    if name not in LOG_LEVELS:
        raise ConfigurationError(
            f"Unknown log level {level_name!r}, expected one of {', '.join(LOG_LEVELS)}"
        )
    return getattr(logging, name)


def setup_logger(
    name: str,
    log_dir: str = "logs",
    level: int = logging.DEBUG,
    console_level: int = logging.INFO,
    file_prefix: str = "controlrisk",
) -> logging.Logger:
    """
    Attach a console handler and a timestamped file handler to a logger.

    A second call for the same logger keeps the existing handlers and only
    updates the logger and console levels.

    Args:
        name: Logger name
        log_dir: Directory for ``<file_prefix>_<timestamp>.log``
        level: Logger level (default: DEBUG)
        console_level: Console handler level (default: INFO)
        file_prefix: Log file name prefix

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(console_level)
        return logger

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    file_handler = logging.FileHandler(log_path / f"{file_prefix}_{timestamp}.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


def configure_logging(cfg: AppConfig) -> logging.Logger:
    """Set up the package logger from ``log_level`` and ``log_dir`` settings."""
    return setup_logger(
        PACKAGE_LOGGER,
        log_dir=cfg.log_dir,
        level=parse_log_level(cfg.log_level),
    )


def current_log_file(name: str = PACKAGE_LOGGER) -> Path | None:
    """Path of the file a logger writes to, if it has a file handler."""
    for handler in logging.getLogger(name).handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def get_logger(name: str) -> logging.Logger:
    """Get or create a logger with the given name."""
    return logging.getLogger(name)
