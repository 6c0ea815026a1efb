"""
JSON-file subscription store.

For local runs and small deployments: subscriptions live in a JSON file and
outcomes are written to the status file.

File format:
    {"subscriptions": [{"email": "a@example.com", "handle": "naval", "active": true}]}
"""

import json
import os
from typing import List, Optional

from .base import SubscriptionStore
from .. import status
from ..errors import ErrorCode, StoreError
from ..models import DeliveryOutcome, Subscription
from ..utils import safe_str


class FileSubscriptionStore(SubscriptionStore):
    """Subscriptions read from a local JSON file."""

    def __init__(self, path: str, status_path: Optional[str] = None):
        self.path = os.path.expanduser(path)
        self.status_path = status_path

    def list_active_subscriptions(self) -> List[Subscription]:
        if not os.path.exists(self.path):
            raise StoreError(ErrorCode.STORE_QUERY_FAILED, f"Subscriptions file not found: {self.path}")

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(ErrorCode.STORE_FILE_CORRUPT, f"Invalid JSON in {self.path}: {e}")
        except PermissionError:
            raise StoreError(ErrorCode.WRITE_PERMISSION_DENIED, f"Cannot read {self.path}")

        rows = data.get("subscriptions") if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise StoreError(ErrorCode.STORE_FILE_CORRUPT, "Expected a 'subscriptions' array")

        subscriptions = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            email = safe_str(row.get("email")).strip()
            handle = safe_str(row.get("handle")).strip()
            if not email or not handle or not row.get("active", True):
                continue
            subscriptions.append(Subscription(email=email, handle=handle))
        return subscriptions

    def record_outcome(self, email: str, outcome: DeliveryOutcome) -> None:
        status.record_outcome(self.status_path, outcome)
