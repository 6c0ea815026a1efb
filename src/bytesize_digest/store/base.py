"""
Base subscription store interface.

Defines the abstract interface for reading active subscriptions and
recording per-subscriber outcomes, plus a mock implementation for testing.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..errors import ConfigError, ErrorCode, StoreError
from ..models import DeliveryOutcome, Subscription


class SubscriptionStore(ABC):
    """Base class for all subscription stores."""

    @abstractmethod
    def list_active_subscriptions(self) -> List[Subscription]:
        """
        Return every active (email, handle) subscription row.

        Raises:
            StoreError: If the store cannot be queried
        """
        pass

    def record_outcome(self, email: str, outcome: DeliveryOutcome) -> None:
        """Persist a subscriber's outcome. Stores without history ignore it."""
        return None

    @property
    def name(self) -> str:
        """Store name for logging."""
        return self.__class__.__name__


class MockSubscriptionStore(SubscriptionStore):
    """
    Mock subscription store for testing.

    Serves a fixed list of subscriptions and records outcomes in memory.
    """

    def __init__(
        self,
        subscriptions: Optional[List[Subscription]] = None,
        fail_count: int = 0,
        error: Optional[Exception] = None,
    ):
        """
        Initialize mock store.

        Args:
            subscriptions: Rows returned by list_active_subscriptions
            fail_count: Number of queries that fail with STORE_NETWORK_ERROR first
            error: Exception raised on every query instead
        """
        self.subscriptions = subscriptions or []
        self.fail_count = fail_count
        self.error = error
        self.query_count = 0
        self.outcomes: Dict[str, DeliveryOutcome] = {}
        self._lock = threading.Lock()

    def list_active_subscriptions(self) -> List[Subscription]:
        """Mock query implementation."""
        self.query_count += 1

        if self.error:
            raise self.error

        if self.query_count <= self.fail_count:
            raise StoreError(ErrorCode.STORE_NETWORK_ERROR, "Configured failure count")

        return [s for s in self.subscriptions if s.active]

    def record_outcome(self, email: str, outcome: DeliveryOutcome) -> None:
        with self._lock:
            self.outcomes[email] = outcome


def get_store(config: Dict[str, Any], credentials: Optional[Dict[str, str]] = None) -> SubscriptionStore:
    """
    Get subscription store instance from configuration.

    Args:
        config: The "store" configuration section
        credentials: Resolved secrets (supabase_url, supabase_key)

    Returns:
        Configured subscription store instance

    Raises:
        ConfigError: If store not found or misconfigured
    """
    credentials = credentials or {}
    provider_type = config.get("provider")

    if not provider_type:
        raise ConfigError(ErrorCode.CONFIG_MISSING_REQUIRED_FIELD, "store.provider required")

    if provider_type == "supabase":
        from .supabase import SupabaseSubscriptionStore
        return SupabaseSubscriptionStore(
            url=credentials.get("supabase_url"),
            key=credentials.get("supabase_key"),
            timeout=config.get("timeout_seconds", 10),
        )

    if provider_type == "file":
        from .file import FileSubscriptionStore
        path = config.get("path")
        if not path:
            raise ConfigError(ErrorCode.CONFIG_MISSING_REQUIRED_FIELD, "store.path required for file store")
        return FileSubscriptionStore(path=path, status_path=config.get("status_path"))

    raise ConfigError(
        ErrorCode.CONFIG_INVALID_VALUE,
        f"Unknown subscription store: {provider_type}"
    )
