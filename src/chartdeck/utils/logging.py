"""Logging bootstrap for hosts that embed the artifact workspace.

Handlers are attached to the ``chartdeck`` package logger rather than the
root logger, so a host application that already configured logging keeps
its own handlers and formats. Records still propagate to the root logger.

The configured log file is read back from the installed handler instead of
being cached in module state.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["PACKAGE_LOGGER", "LOG_FILE_NAME", "setup_logging", "current_log_path", "resolve_log_dir"]

PACKAGE_LOGGER = "chartdeck"
LOG_FILE_NAME = "chartdeck.log"
DEFAULT_LOG_DIR = Path.home() / ".chartdeck" / "logs"
LOG_DIR_ENV = "CHARTDECK_LOG_DIR"

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_OWNED_ATTR = "_chartdeck_owned"
# Held at WARNING or above regardless of the package level.
_CHATTY_LOGGERS: tuple[str, ...] = ("asyncio",)


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install the package's file and console handlers and return the log path.

    A second call without ``force`` keeps the existing handlers and only
    applies ``level``, so a session created with ``debug_logging`` can raise
    verbosity after the host already bootstrapped at INFO. ``force`` removes
    the handlers this module installed and builds new ones, which is how the
    log directory is changed.
    """

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    existing = current_log_path()
    if existing is not None and not force:
        _apply_level(package_logger, level)
        return existing

    _remove_owned_handlers(package_logger)
    log_path = resolve_log_dir(log_dir) / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _OWNED_ATTR, True)
        package_logger.addHandler(handler)

    _apply_level(package_logger, level)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return log_path


def current_log_path() -> Path | None:
    """Return the file written by the handler :func:`setup_logging` installed, if any."""

    for handler in logging.getLogger(PACKAGE_LOGGER).handlers:
        if getattr(handler, _OWNED_ATTR, False) and isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def resolve_log_dir(log_dir: Path | str | None = None) -> Path:
    """Explicit directory first, then ``CHARTDECK_LOG_DIR``, then ``~/.chartdeck/logs``."""

    return Path(log_dir or os.environ.get(LOG_DIR_ENV) or DEFAULT_LOG_DIR).expanduser()


def _apply_level(package_logger: logging.Logger, level: int) -> None:
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        if getattr(handler, _OWNED_ATTR, False):
            handler.setLevel(level)


def _remove_owned_handlers(package_logger: logging.Logger) -> None:
    for handler in list(package_logger.handlers):
        if getattr(handler, _OWNED_ATTR, False):
            package_logger.removeHandler(handler)
            handler.close()
