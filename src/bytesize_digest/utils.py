"""
Utility functions shared across bytesize-digest modules.

Provides date bucketing in a fixed time zone, cancellable waits used by
throttles and backoff, and safe conversion helpers for parsing provider
payloads.
"""

import threading
import time
from datetime import datetime, UTC
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import RunCancelledError


DEFAULT_TIMEZONE = "UTC"


def get_timezone(name: Optional[str] = None) -> ZoneInfo:
    """
    Resolve a time zone name to a ZoneInfo.

    Args:
        name: IANA zone name (e.g. "Asia/Kolkata"); defaults to UTC

    Raises:
        ValueError: If the zone is unknown
    """
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def current_date_bucket(timezone: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Calendar day used as part of the summary cache key.

    Args:
        timezone: Fixed zone the day is computed in
        now: Current time (defaults to UTC now)

    Returns:
        Date as "YYYY-MM-DD"
    """
    if now is None:
        now = datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(get_timezone(timezone)).strftime("%Y-%m-%d")


def format_display_date(timezone: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Human-readable date for the email subtitle, e.g. "19 Oct 2026"."""
    if now is None:
        now = datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(get_timezone(timezone)).strftime("%d %b %Y")


def wait(seconds: float, cancel_event: Optional[threading.Event] = None) -> None:
    """
    Sleep for a number of seconds, waking early if the run is cancelled.

    Args:
        seconds: Time to wait
        cancel_event: Event set when the run is cancelled or timed out

    Raises:
        RunCancelledError: If cancel_event is (or becomes) set
    """
    if seconds <= 0:
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelledError()
        return

    if cancel_event is None:
        time.sleep(seconds)
        return

    if cancel_event.wait(seconds):
        raise RunCancelledError()


def elapsed_ms(start: float) -> int:
    """Milliseconds since a time.monotonic() start mark."""
    return int((time.monotonic() - start) * 1000)


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to maximum length with suffix.

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Suffix to add if truncated

    Returns:
        Truncated text with suffix if needed
    """
    if len(text) <= max_length:
        return text

    if len(suffix) >= max_length:
        return suffix[:max_length]

    actual_max = max_length - len(suffix)
    return text[:actual_max] + suffix


def safe_str(value, default: str = "") -> str:
    """Safely convert value to string with default fallback."""
    try:
        return str(value) if value is not None else default
    except Exception:
        return default
