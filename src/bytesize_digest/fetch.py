"""
Paginated, time-bounded retrieval of recent posts per handle.

The fetcher walks each handle's search results page by page through a
ContentSource. Handles are fetched concurrently; pages within one handle are
requested strictly in order with a fixed delay between them.

Each page request is raced against a timeout. A timeout or page error stops
pagination for that handle only: posts already collected are kept and the
failure is logged as ContentUnavailableError. Configuration errors (expired
source credentials) and run cancellation are not degraded and propagate to
the caller.

Replies are discarded as soon as a page arrives; only primary posts are
returned, deduplicated by id across a handle's pages.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, Iterable, List, Optional

from .classify import segregate_posts
from .errors import (
    ConfigError, ContentUnavailableError, ErrorCode, RunCancelledError,
    TransientNetworkError,
)
from .logging import get_logger
from .models import Post, SearchPage
from .sources.base import ContentSource
from .utils import elapsed_ms, wait


DEFAULT_PAGE_SIZE = 20
DEFAULT_MAX_PAGES = 3
DEFAULT_PAGE_TIMEOUT_SECONDS = 5.0
DEFAULT_PAGE_DELAY_SECONDS = 0.5
DEFAULT_MAX_WORKERS = 8


def normalize_handles(handles: Iterable[str]) -> List[str]:
    """Strip '@' and whitespace, drop blanks and repeats, keep first-seen order."""
    result = []
    seen = set()
    for handle in handles:
        if not handle:
            continue
        cleaned = handle.strip().lstrip("@").strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
    return result


class ContentFetcher:
    """Fetches primary posts for a set of handles."""

    def __init__(
        self,
        source: ContentSource,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        page_timeout: float = DEFAULT_PAGE_TIMEOUT_SECONDS,
        page_delay: float = DEFAULT_PAGE_DELAY_SECONDS,
        max_workers: int = DEFAULT_MAX_WORKERS,
        sleep: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize fetcher.

        Args:
            source: Content source answering paginated searches
            page_size: Items requested per page
            max_pages: Page cap per handle
            page_timeout: Seconds allowed for a single page request
            page_delay: Seconds to wait between pages of the same handle
            max_workers: Handles fetched in parallel
            sleep: Replacement wait function (tests)
            cancel_event: Run cancellation event
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        if page_timeout <= 0:
            raise ValueError("page_timeout must be > 0")

        self.source = source
        self.page_size = page_size
        self.max_pages = max_pages
        self.page_timeout = page_timeout
        self.page_delay = page_delay
        self.max_workers = max(1, max_workers)
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.logger = get_logger("fetch")

    def fetch(self, handles: Iterable[str]) -> List[Post]:
        """
        Fetch recent primary posts for every handle.

        Args:
            handles: Handles to fetch; repeats and '@' prefixes are ignored

        Returns:
            Primary posts grouped in handle order, each handle's posts in
            retrieval order

        Raises:
            ConfigError: If the source rejects its credentials
            RunCancelledError: If the run is cancelled mid-fetch
        """
        unique = normalize_handles(handles)
        if not unique:
            return []

        start = time.monotonic()
        page_pool = ThreadPoolExecutor(
            max_workers=len(unique), thread_name_prefix="page"
        )
        try:
            with ThreadPoolExecutor(
                max_workers=min(self.max_workers, len(unique)),
                thread_name_prefix="fetch",
            ) as pool:
                futures = [
                    pool.submit(self.fetch_handle, handle, page_pool)
                    for handle in unique
                ]
                posts: List[Post] = []
                for future in futures:
                    posts.extend(future.result())
        finally:
            # A timed-out page may still be running; don't wait for it.
            page_pool.shutdown(wait=False)

        self.logger.info(
            "Fetched %d primary posts from %d handles in %dms",
            len(posts), len(unique), elapsed_ms(start)
        )
        return posts

    def fetch_handle(
        self,
        handle: str,
        page_pool: Optional[ThreadPoolExecutor] = None,
    ) -> List[Post]:
        """
        Paginate one handle's posts.

        Pagination stops when a page is short, the source reports no more
        pages, the page cap is reached, or a page fails.

        Args:
            handle: Handle without @
            page_pool: Executor page requests run on (created if omitted)

        Returns:
            Primary posts for the handle, deduplicated by id
        """
        own_pool = page_pool is None
        if own_pool:
            page_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="page")

        collected: List[Post] = []
        seen_ids = set()
        replies_dropped = 0

        try:
            for page in range(1, self.max_pages + 1):
                if page > 1:
                    self._wait(self.page_delay)
                self._check_cancelled()

                try:
                    result = self._request_page(page_pool, handle, page)
                except (ConfigError, RunCancelledError):
                    raise
                except Exception as e:
                    error = ContentUnavailableError(handle, f"Page {page} for @{handle} failed: {e}")
                    self.logger.warning("%s (keeping %d posts)", error, len(collected))
                    break

                primary, replies = segregate_posts(result.items)
                replies_dropped += len(replies)
                for post in primary:
                    if post.id in seen_ids:
                        continue
                    seen_ids.add(post.id)
                    collected.append(post)

                self.logger.debug(
                    "@%s page %d: %d items (%d primary)",
                    handle, page, len(result.items), len(primary)
                )

                if len(result.items) < self.page_size or not result.has_more:
                    break
        finally:
            if own_pool:
                page_pool.shutdown(wait=False)

        self.logger.info(
            "@%s: %d primary posts kept, %d replies dropped",
            handle, len(collected), replies_dropped
        )
        return collected

    def _request_page(self, page_pool: ThreadPoolExecutor, handle: str, page: int) -> SearchPage:
        future = page_pool.submit(self.source.search, handle, page, self.page_size)
        try:
            return future.result(timeout=self.page_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise TransientNetworkError(
                ErrorCode.SOURCE_TIMEOUT,
                f"Page request timed out after {self.page_timeout}s"
            )

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelledError()

    def _wait(self, seconds: float) -> None:
        if self.sleep is not None:
            self.sleep(seconds)
            return
        wait(seconds, self.cancel_event)
