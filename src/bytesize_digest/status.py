"""
Status file management for bytesize-digest.

Handles reading and writing the status.json file with file locking so that
concurrent worker threads (and overlapping runs) never interleave writes.

The status file records the latest delivery outcome per subscriber email
and a few counters for monitoring.
"""

import fcntl
import json
import os
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ErrorCode, StoreError
from .models import DeliveryOutcome, DeliveryStatus


# flock is per open file description; threads in one process also need this.
_write_lock = threading.Lock()


def load_status(status_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load status file with default structure if missing.

    Args:
        status_path: Path to status file. If None, uses default location.

    Returns:
        Status dictionary with default structure if file doesn't exist

    Raises:
        StoreError: If file exists but is corrupted or locked
    """
    if status_path is None:
        status_path = default_status_path()

    if not os.path.exists(status_path):
        return _create_default_status()

    try:
        with open(status_path, 'r', encoding='utf-8') as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_SH)
            try:
                status = json.load(f)
                return _validate_status_structure(status)
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except json.JSONDecodeError:
        raise StoreError(ErrorCode.STORE_FILE_CORRUPT, f"Corrupt status file: {status_path}")
    except BlockingIOError:
        raise StoreError(ErrorCode.STORE_FILE_LOCKED)
    except PermissionError:
        raise StoreError(ErrorCode.WRITE_PERMISSION_DENIED)


def record_outcome(status_path: Optional[str], outcome: DeliveryOutcome) -> None:
    """
    Record the latest outcome for a subscriber with file locking.

    Args:
        status_path: Path to status file. If None, uses default location.
        outcome: Delivery outcome to record

    Raises:
        StoreError: If file cannot be locked or written
    """
    if status_path is None:
        status_path = default_status_path()

    Path(status_path).parent.mkdir(parents=True, exist_ok=True)
    now = datetime.now(UTC).isoformat()

    try:
        with _write_lock, open(status_path, 'a+', encoding='utf-8') as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.seek(0)
                content = f.read().strip()
                status = _create_default_status()
                if content:
                    try:
                        status = _validate_status_structure(json.loads(content))
                    except json.JSONDecodeError:
                        # Corrupted file, start fresh
                        pass

                entry = status["subscribers"].setdefault(outcome.email, _create_default_entry())
                entry.update(outcome.to_dict())
                entry["last_run"] = now
                entry["run_count"] = entry.get("run_count", 0) + 1
                if outcome.status == DeliveryStatus.SENT:
                    entry["last_success"] = now
                    entry["sent_count"] = entry.get("sent_count", 0) + 1

                status["last_updated"] = now

                f.seek(0)
                f.truncate()
                json.dump(status, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except BlockingIOError:
        raise StoreError(ErrorCode.STORE_FILE_LOCKED)
    except PermissionError:
        raise StoreError(ErrorCode.WRITE_PERMISSION_DENIED)


def default_status_path() -> str:
    """Get default status file path."""
    return os.path.join(os.getcwd(), "data", "status.json")


def _create_default_status() -> Dict[str, Any]:
    now = datetime.now(UTC).isoformat()
    return {
        "subscribers": {},
        "created_at": now,
        "last_updated": now,
    }


def _create_default_entry() -> Dict[str, Any]:
    return {
        "last_run": None,
        "last_success": None,
        "status": None,
        "error": None,
        "run_count": 0,
        "sent_count": 0,
    }


def _validate_status_structure(status: Any) -> Dict[str, Any]:
    """Ensure required fields exist and have correct types."""
    if not isinstance(status, dict):
        return _create_default_status()

    if not isinstance(status.get("subscribers"), dict):
        status["subscribers"] = {}

    if "last_updated" not in status:
        status["last_updated"] = datetime.now(UTC).isoformat()

    for email, entry in list(status["subscribers"].items()):
        if not isinstance(entry, dict):
            status["subscribers"][email] = _create_default_entry()
            continue
        for key, default_value in _create_default_entry().items():
            entry.setdefault(key, default_value)

    return status
