"""
Per-handle summarization with a shared daily cache.

The Summarizer groups a subscriber's posts by author handle and produces one
LLM-generated HTML block per handle. Summaries are cached under
"<handle>-<YYYY-MM-DD>", so a handle followed by several subscribers is
summarized once per day and reused for everyone.

The cache is shared by every worker thread in a run. Two subscribers racing
on the same uncached handle may both call the LLM; the later result simply
overwrites the earlier one.
"""

import fcntl
import json
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .classify import group_by_author
from .digest import (
    build_system_instruction, build_user_prompt, clean_summary_html, join_handle_blocks
)
from .errors import ErrorCode, LLMError, StoreError
from .llm.base import LLMProvider
from .logging import get_logger
from .models import HandleDigest, Post
from .retry import RetryPolicy, retry_on_transient
from .utils import current_date_bucket, elapsed_ms


DEFAULT_MAX_WORKERS = 4


class SummaryCache:
    """Thread-safe map of "<handle>-<date>" to summary HTML."""

    def __init__(self, path: Optional[str] = None):
        """
        Initialize cache.

        Args:
            path: Optional JSON file the cache is loaded from and saved to
        """
        self.path = path
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("cache")

    @staticmethod
    def make_key(handle: str, date_bucket: str) -> str:
        return f"{handle}-{date_bucket}"

    def get(self, handle: str, date_bucket: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(self.make_key(handle, date_bucket))

    def set(self, handle: str, date_bucket: str, summary_html: str) -> None:
        with self._lock:
            self._entries[self.make_key(handle, date_bucket)] = summary_html

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def prune(self, keep_date_bucket: str) -> int:
        """
        Drop entries from other days.

        Returns:
            Number of entries removed
        """
        suffix = f"-{keep_date_bucket}"
        with self._lock:
            stale = [k for k in self._entries if not k.endswith(suffix)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def load(self) -> int:
        """
        Load entries from the cache file, if one is configured and exists.

        A corrupt file is logged and ignored; the cache starts empty.

        Returns:
            Number of entries loaded
        """
        if not self.path or not os.path.exists(self.path):
            return 0

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = json.load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except json.JSONDecodeError:
            self.logger.warning("Summary cache %s is corrupt; starting empty", self.path)
            return 0
        except PermissionError:
            raise StoreError(ErrorCode.WRITE_PERMISSION_DENIED, f"Cannot read {self.path}")

        entries = data.get("entries", {}) if isinstance(data, dict) else {}
        loaded = {k: v for k, v in entries.items() if isinstance(k, str) and isinstance(v, str)}
        with self._lock:
            self._entries.update(loaded)
        return len(loaded)

    def save(self) -> None:
        """Write all entries to the cache file under an exclusive lock."""
        if not self.path:
            return

        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            snapshot = dict(self._entries)

        try:
            with open(self.path, "a+", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.seek(0)
                    f.truncate()
                    json.dump({"version": 1, "entries": snapshot}, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except PermissionError:
            raise StoreError(ErrorCode.WRITE_PERMISSION_DENIED, f"Cannot write {self.path}")


class Summarizer:
    """Turns posts into per-handle HTML summaries through an LLM."""

    def __init__(
        self,
        llm: LLMProvider,
        cache: SummaryCache,
        date_bucket: Optional[str] = None,
        timezone: Optional[str] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize summarizer.

        Args:
            llm: Text generation provider
            cache: Shared summary cache
            date_bucket: Cache date; computed once from timezone if omitted
            timezone: Zone the date bucket is computed in
            max_workers: Handles summarized in parallel
            retry_policy: Retry wrapper for LLM calls (transient errors only)
        """
        self.llm = llm
        self.cache = cache
        self.date_bucket = date_bucket or current_date_bucket(timezone)
        self.max_workers = max(1, max_workers)
        self.retry_policy = retry_policy or RetryPolicy(
            should_retry=retry_on_transient, name="LLM summary"
        )
        self.logger = get_logger("summarize")

    def summarize(self, posts: Iterable[Post]) -> str:
        """
        Summarize posts into concatenated per-handle HTML blocks.

        Returns:
            HTML body, or "" when there are no posts

        Raises:
            LLMError: If any handle's summary fails; no partial result
        """
        return join_handle_blocks(self.summarize_handles(posts))

    def summarize_handles(self, posts: Iterable[Post]) -> List[HandleDigest]:
        """
        Summarize each handle's posts.

        Handles are summarized concurrently. Output order follows the order in
        which handles first appear in posts.

        Raises:
            LLMError: If any handle's summary fails
        """
        groups = group_by_author(posts)
        if not groups:
            return []

        start = time.monotonic()
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(groups)),
            thread_name_prefix="summarize",
        ) as pool:
            futures = [
                pool.submit(self.summarize_handle, handle, handle_posts)
                for handle, handle_posts in groups.items()
            ]
            digests = [future.result() for future in futures]

        self.logger.info(
            "Summarized %d handles in %dms", len(digests), elapsed_ms(start)
        )
        return digests

    def summarize_handle(self, handle: str, posts: List[Post]) -> HandleDigest:
        """Return the cached summary for handle, generating it on a miss."""
        cached = self.cache.get(handle, self.date_bucket)
        if cached is not None:
            self.logger.debug("Cache hit for @%s (%s)", handle, self.date_bucket)
            return HandleDigest(handle=handle, summary_html=cached)

        system = build_system_instruction(handle)
        prompt = build_user_prompt(handle, (p.text for p in posts))

        start = time.monotonic()
        raw = self.retry_policy.execute(self.llm.complete, system, prompt)
        summary_html = clean_summary_html(raw)
        if not summary_html:
            raise LLMError(ErrorCode.LLM_EMPTY_RESPONSE, f"Empty summary for @{handle}")

        self.cache.set(handle, self.date_bucket, summary_html)
        self.logger.info(
            "Generated summary for @%s from %d posts in %dms",
            handle, len(posts), elapsed_ms(start)
        )
        return HandleDigest(handle=handle, summary_html=summary_html)
