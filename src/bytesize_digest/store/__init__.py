"""
Subscription stores.

The pipeline reads active (email, handle) rows from a store at the start of
every run and hands each subscriber's outcome back at the end.
"""

from .base import MockSubscriptionStore, SubscriptionStore, get_store
from .file import FileSubscriptionStore
from .supabase import SupabaseSubscriptionStore

__all__ = [
    "SubscriptionStore", "MockSubscriptionStore", "get_store",
    "FileSubscriptionStore", "SupabaseSubscriptionStore",
]
