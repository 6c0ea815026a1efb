"""
Base content source interface.

Defines the abstract interface for retrieving a handle's recent posts one
page at a time, and a mock implementation for testing.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..errors import ConfigError, ErrorCode, SourceError
from ..models import SearchPage, SourcePost


class ContentSource(ABC):
    """Base class for all content sources."""

    @abstractmethod
    def search(self, author: str, page: int, page_size: int) -> SearchPage:
        """
        Fetch one page of recent posts by an author.

        Args:
            author: Handle without @
            page: 1-based page number
            page_size: Maximum items per page

        Returns:
            SearchPage with items and whether more pages exist

        Raises:
            SourceError: If the request fails
        """
        pass

    @property
    def name(self) -> str:
        """Source name for logging."""
        return self.__class__.__name__


class MockContentSource(ContentSource):
    """
    Mock content source for testing.

    Serves posts from an in-memory mapping of handle -> list of posts,
    sliced into pages. Individual handles can be made to fail or hang.
    """

    def __init__(
        self,
        posts: Optional[Dict[str, List[SourcePost]]] = None,
        fail_handles: Optional[Dict[str, BaseException]] = None,
        fail_on_page: Optional[Dict[str, int]] = None,
        block_handles: Optional[Dict[str, threading.Event]] = None,
        always_has_more: bool = False,
    ):
        """
        Initialize mock source.

        Args:
            posts: Posts per handle, served in order
            fail_handles: Handle -> exception raised on every request
            fail_on_page: Handle -> page number that raises SourceError
            block_handles: Handle -> event the request waits on before answering
            always_has_more: Claim more pages exist regardless of data
        """
        self.posts = posts or {}
        self.fail_handles = fail_handles or {}
        self.fail_on_page = fail_on_page or {}
        self.block_handles = block_handles or {}
        self.always_has_more = always_has_more

        self.requests: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def search(self, author: str, page: int, page_size: int) -> SearchPage:
        """Mock search implementation."""
        with self._lock:
            self.requests.append({"author": author, "page": page, "page_size": page_size})

        if author in self.block_handles:
            self.block_handles[author].wait()

        if author in self.fail_handles:
            raise self.fail_handles[author]

        if self.fail_on_page.get(author) == page:
            raise SourceError(ErrorCode.SOURCE_COMMAND_FAILED, f"Configured failure on page {page}")

        all_posts = self.posts.get(author, [])
        start = (page - 1) * page_size
        items = all_posts[start:start + page_size]
        has_more = self.always_has_more or start + page_size < len(all_posts)

        return SearchPage(items=list(items), has_more=has_more)

    def requests_for(self, author: str) -> List[Dict[str, Any]]:
        """Requests issued for one handle."""
        return [r for r in self.requests if r["author"] == author]

    def reset(self):
        """Reset request tracking."""
        self.requests = []


def get_source(config: Dict[str, Any]) -> ContentSource:
    """
    Get content source instance from configuration.

    Args:
        config: Source configuration dictionary

    Returns:
        Configured content source instance

    Raises:
        ConfigError: If source not found or misconfigured
    """
    provider_type = config.get("provider", "bird")

    if provider_type == "bird":
        from .bird import BirdContentSource
        return BirdContentSource(
            env_path=config.get("env_path"),
            timeout=config.get("timeout", 30),
        )

    raise ConfigError(
        ErrorCode.CONFIG_INVALID_VALUE,
        f"Unknown content source: {provider_type}"
    )
