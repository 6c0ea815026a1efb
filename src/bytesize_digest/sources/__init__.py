"""
Content sources for fetching a handle's recent posts.

A source answers one paginated search per call; pagination, timeouts and
throttling are handled by the fetcher on top of it.
"""

from .base import ContentSource, MockContentSource, get_source
from .bird import BirdContentSource

__all__ = ["ContentSource", "MockContentSource", "get_source", "BirdContentSource"]
