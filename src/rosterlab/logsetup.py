"""Logging configuration helpers."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rosterlab.config.models import LoggingSettings

_HANDLER_NAME = "rosterlab-file"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: LoggingSettings, working_dir: Path) -> logging.Logger:
    """Attach a rotating file handler to the ``rosterlab`` logger.

    Calling this again replaces the previously installed handler, so the CLI can
    reconfigure logging after overrides are resolved.

    Args:
        settings: Logging settings from the effective configuration.
        working_dir: Directory that relative log paths resolve against.

    Returns:
        logging.Logger: The package logger.
    """
    logger = logging.getLogger("rosterlab")
    logger.setLevel(settings.level.upper())

    for handler in list(logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            logger.removeHandler(handler)
            handler.close()

    if not settings.file:
        return logger

    log_path = Path(settings.file).expanduser()
    if not log_path.is_absolute():
        log_path = working_dir / log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_path,
        maxBytes=settings.max_size_mb * 1024 * 1024,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    return logger


__all__ = ["configure_logging"]
