"""Centralized logging configuration for BTC Fee Tracker."""

import logging
import logging.handlers
from pathlib import Path
from typing import Any, Dict
from .config import Config
from .constants import DEFAULT_LOG_BACKUP_COUNT, DEFAULT_LOG_MAX_BYTES

FILE_FORMAT = '%(asctime)s [%(levelname)-8s] [%(name)s] %(message)s'
CONSOLE_FORMAT = '[%(levelname)-8s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Chatty HTTP internals; kept at WARNING unless the console runs at DEBUG
NOISY_LOGGERS = ("urllib3", "requests")


def _rotating_handler(path: Path, rotation: Dict[str, Any], archive_dir: Path) -> logging.Handler:
    """Build a time- or size-rotated file handler for path."""
    backup_count = rotation.get("backup_count", DEFAULT_LOG_BACKUP_COUNT)
    if rotation.get("when") == "midnight":
        handler = logging.handlers.TimedRotatingFileHandler(
            path,
            when="midnight",
            interval=1,
            backupCount=backup_count,
            encoding="utf-8"
        )
        # Rotated files go to the archive directory
        handler.namer = lambda name: str(archive_dir / Path(name).name)
        return handler
    return logging.handlers.RotatingFileHandler(
        path,
        maxBytes=rotation.get("max_bytes", DEFAULT_LOG_MAX_BYTES),
        backupCount=backup_count,
        encoding="utf-8"
    )


def setup_logging(config: Config, verbose: bool = False) -> None:
    """
    Initialize logging system based on configuration.

    Writes feetracker.log (rotated per config), feetracker-error.log
    (errors only, size rotated) and a console stream.

    Args:
        config: Configuration instance with logging settings
        verbose: Force DEBUG on the console regardless of config
    """
    log_dir_path = Path(config.log_dir)
    log_dir_path.mkdir(parents=True, exist_ok=True)
    archive_dir = log_dir_path / "archive"
    archive_dir.mkdir(exist_ok=True)

    file_level = getattr(logging, config.log_level.upper(), logging.INFO)
    console_level = logging.DEBUG if verbose else getattr(logging, config.console_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(min(file_level, console_level))
    root_logger.handlers.clear()

    file_formatter = logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT)
    rotation = config.log_rotation

    file_handler = _rotating_handler(log_dir_path / "feetracker.log", rotation, archive_dir)
    file_handler.setLevel(file_level)
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    error_handler = _rotating_handler(
        log_dir_path / "feetracker-error.log",
        dict(rotation, when=None),
        archive_dir,
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_formatter)
    root_logger.addHandler(error_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)

    if console_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific component.

    Args:
        name: Logger name (typically __name__ or component name)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
