"""
Supabase subscription store.

Reads active subscriptions through Supabase's PostgREST API: the
subscriptions table joined to users for the subscriber's email.
"""

import requests
from typing import Any, Dict, List, Optional

from .base import SubscriptionStore
from ..errors import ConfigError, ErrorCode, RateLimitedError, StoreError, TransientNetworkError
from ..models import Subscription
from ..utils import safe_str


SUBSCRIPTIONS_TABLE = "subscriptions"
SELECT_COLUMNS = "handle,users!inner(email)"


class SupabaseSubscriptionStore(SubscriptionStore):
    """Subscription store backed by a Supabase project."""

    def __init__(self, url: Optional[str], key: Optional[str], timeout: float = 10):
        """
        Initialize Supabase store.

        Args:
            url: Project URL, e.g. https://abc.supabase.co
            key: Service or anon API key
            timeout: HTTP timeout in seconds

        Raises:
            ConfigError: If url or key is missing
        """
        if not url or not key:
            raise ConfigError(
                ErrorCode.CONFIG_MISSING_CREDENTIALS,
                "SUPABASE_URL and SUPABASE_KEY are required"
            )
        self.url = url.rstrip("/")
        self.key = key
        self.timeout = timeout

    def list_active_subscriptions(self) -> List[Subscription]:
        """
        Query active subscription rows.

        Raises:
            StoreError: On HTTP or payload errors
        """
        endpoint = f"{self.url}/rest/v1/{SUBSCRIPTIONS_TABLE}"
        params = {"select": SELECT_COLUMNS, "is_active": "eq.true"}
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Accept": "application/json",
        }

        try:
            response = requests.get(endpoint, params=params, headers=headers, timeout=self.timeout)
        except requests.Timeout:
            raise TransientNetworkError(ErrorCode.STORE_NETWORK_ERROR, "Supabase request timed out")
        except requests.RequestException as e:
            raise StoreError(ErrorCode.STORE_NETWORK_ERROR, str(e))

        if response.status_code in (401, 403):
            raise ConfigError(ErrorCode.STORE_AUTH_FAILED, "Supabase rejected the API key")
        elif response.status_code == 429:
            raise RateLimitedError(ErrorCode.STORE_RATE_LIMITED)
        elif response.status_code != 200:
            raise StoreError(ErrorCode.STORE_QUERY_FAILED, f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            rows = response.json()
        except ValueError as e:
            raise StoreError(ErrorCode.STORE_QUERY_FAILED, f"Invalid JSON: {e}")

        if not isinstance(rows, list):
            raise StoreError(ErrorCode.STORE_QUERY_FAILED, "Expected a JSON array of rows")

        return parse_subscription_rows(rows)


def parse_subscription_rows(rows: List[Dict[str, Any]]) -> List[Subscription]:
    """
    Convert joined rows ({"handle": ..., "users": {"email": ...}}) to Subscriptions.

    Rows without an email or handle are skipped.
    """
    subscriptions = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        users = row.get("users")
        # A to-one join may come back as an object or a one-element list
        if isinstance(users, list):
            users = users[0] if users else None
        email = safe_str(users.get("email")) if isinstance(users, dict) else ""
        handle = safe_str(row.get("handle")).strip()
        if not email or not handle:
            continue
        subscriptions.append(Subscription(email=email, handle=handle, active=True))
    return subscriptions
