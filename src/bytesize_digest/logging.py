"""
Logging setup for bytesize-digest.

One rotating log file (data/bytesize-digest.log, 5MB, 3 backups by default)
plus WARNING and above on stderr.

Subscribers are processed concurrently, so lines from different branches
interleave. Each record is stamped with the subscriber email bound to the
emitting thread (see subscriber_context) and the thread name; records from
outside a subscriber branch show "-".

Level precedence: explicit argument, LOG_LEVEL environment variable,
config["logging"]["level"], then INFO.
"""

import contextlib
import logging
import os
import threading
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional


LOGGER_NAME = "bytesize_digest"

DEFAULT_LOG_FILE = "data/bytesize-digest.log"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5MB
DEFAULT_BACKUP_COUNT = 3
DEFAULT_LOG_FORMAT = (
    "%(asctime)s [%(levelname)s] %(name)s (%(threadName)s) <%(subscriber)s>: %(message)s"
)
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_logger: Optional[logging.Logger] = None
_context = threading.local()


@dataclass
class LogSettings:
    """Resolved logging options."""
    level: int
    level_name: str
    file: str
    max_bytes: int
    backup_count: int


def resolve_log_settings(
    config: Optional[Dict[str, Any]] = None,
    log_file: Optional[str] = None,
    log_level: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
) -> LogSettings:
    """Combine explicit arguments, environment and config["logging"]."""
    section = (config or {}).get("logging") or {}

    level_name = (
        log_level
        or os.environ.get("LOG_LEVEL")
        or section.get("level")
        or DEFAULT_LOG_LEVEL
    ).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level, level_name = logging.INFO, "INFO"

    return LogSettings(
        level=level,
        level_name=level_name,
        file=log_file or section.get("file") or DEFAULT_LOG_FILE,
        max_bytes=max_bytes or section.get("max_bytes") or DEFAULT_MAX_BYTES,
        backup_count=(
            backup_count if backup_count is not None
            else section.get("backup_count", DEFAULT_BACKUP_COUNT)
        ),
    )


class SubscriberFilter(logging.Filter):
    """Adds the current thread's subscriber email to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.subscriber = current_subscriber() or "-"
        return True


@contextlib.contextmanager
def subscriber_context(email: str) -> Iterator[None]:
    """Bind email to log records emitted by this thread inside the block."""
    previous = current_subscriber()
    _context.subscriber = email
    try:
        yield
    finally:
        _context.subscriber = previous


def current_subscriber() -> Optional[str]:
    """Subscriber bound to this thread, if any."""
    return getattr(_context, "subscriber", None)


def _make_handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT))
    # Filters on the handler also see records propagated from child loggers
    handler.addFilter(SubscriberFilter())
    return handler


def setup_logging(
    config: Optional[Dict[str, Any]] = None,
    log_file: Optional[str] = None,
    log_level: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
) -> logging.Logger:
    """
    Configure and return the bytesize-digest logger.

    Calling it again replaces the previous handlers. If the log file cannot
    be created, logging continues on stderr only.

    Args:
        config: Loaded configuration; its optional "logging" section is used
        log_file: Override log file path
        log_level: Override log level name
        max_bytes: Override rotation size
        backup_count: Override number of rotated files kept

    Returns:
        The configured "bytesize_digest" logger
    """
    global _logger

    settings = resolve_log_settings(config, log_file, log_level, max_bytes, backup_count)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(settings.level)
    logger.handlers.clear()

    try:
        log_path = Path(settings.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path),
            maxBytes=settings.max_bytes,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        logger.addHandler(_make_handler(file_handler, settings.level))
    except OSError:
        pass

    logger.addHandler(_make_handler(logging.StreamHandler(), logging.WARNING))

    _logger = logger
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get the bytesize-digest logger, or a child such as "fetch" or "pipeline".

    Before setup_logging() runs, INFO and above go to stderr.
    """
    global _logger

    if _logger is None:
        logger = logging.getLogger(LOGGER_NAME)
        if not logger.handlers:
            logger.addHandler(_make_handler(logging.StreamHandler(), logging.NOTSET))
            logger.setLevel(logging.INFO)
        _logger = logger

    if name:
        return _logger.getChild(name)
    return _logger
