"""
Digest run orchestration.

One run:

1. Load active subscriptions from the store (retried with backoff).
2. Group rows by email into ordered, unique handle lists.
3. For every subscriber, concurrently: fetch posts, summarize per handle,
   wrap the summary in the newsletter shell, and send it (skipped in dry-run).
4. Wait for every subscriber to settle and report who failed.

Each subscriber's branch is isolated: any error becomes a FAILED outcome
for that subscriber only and siblings keep running. A subscriber gets a
complete digest or nothing; partial emails are never sent.

When a run timeout is set and expires, the cancel event is raised so every
throttle and backoff wait aborts, and subscribers still in flight are
reported as RUN_TIMEOUT failures.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait as wait_futures
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import resolve_credentials
from .deliver import DEFAULT_MIN_SEND_INTERVAL_SECONDS, Deliverer
from .delivery.base import DEFAULT_SENDER, DEFAULT_SUBJECT, DeliveryProvider, get_provider
from .digest import DEFAULT_TITLE, compose_digest_html
from .errors import DigestError, ErrorCode
from .fetch import (
    DEFAULT_MAX_PAGES, DEFAULT_PAGE_DELAY_SECONDS, DEFAULT_PAGE_SIZE,
    DEFAULT_PAGE_TIMEOUT_SECONDS, ContentFetcher,
)
from .llm.base import LLMProvider, get_llm_provider
from .logging import get_logger, subscriber_context
from .models import DeliveryOutcome, DeliveryStatus, RunReport, Subscription
from .retry import (
    DEFAULT_INITIAL_DELAY_SECONDS, DEFAULT_MAX_RETRIES, RetryPolicy, execute_with_retry,
    retry_on_transient, retry_unless_fatal,
)
from .sources.base import ContentSource, get_source
from .store.base import SubscriptionStore, get_store
from .summarize import SummaryCache, Summarizer
from .utils import DEFAULT_TIMEZONE, current_date_bucket, elapsed_ms, format_display_date


NO_SUBSCRIPTIONS_MESSAGE = "No active subscriptions found"
DEFAULT_MAX_WORKERS = 8
DEFAULT_SEND_GRACE_SECONDS = 30.0


def group_subscriptions(subscriptions: Iterable[Subscription]) -> Dict[str, List[str]]:
    """
    Group subscription rows by email.

    Inactive rows and blank handles are ignored, so an email whose rows are
    all inactive or blank does not appear at all.

    Returns:
        email -> handles in first-seen order, without repeats
    """
    groups: Dict[str, List[str]] = {}
    for sub in subscriptions:
        if not sub.active:
            continue
        email = sub.email.strip()
        handle = sub.handle.strip().lstrip("@").strip()
        if not email or not handle:
            continue
        handles = groups.setdefault(email, [])
        if handle not in handles:
            handles.append(handle)
    return groups


class DigestPipeline:
    """Runs digest cycles over a store, source, LLM and delivery provider."""

    def __init__(
        self,
        store: SubscriptionStore,
        source: ContentSource,
        llm: LLMProvider,
        delivery: DeliveryProvider,
        cache: Optional[SummaryCache] = None,
        timezone: str = DEFAULT_TIMEZONE,
        title: str = DEFAULT_TITLE,
        sender: str = DEFAULT_SENDER,
        subject: str = DEFAULT_SUBJECT,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        page_timeout: float = DEFAULT_PAGE_TIMEOUT_SECONDS,
        page_delay: float = DEFAULT_PAGE_DELAY_SECONDS,
        fetch_workers: int = 8,
        summarize_workers: int = 4,
        min_send_interval: float = DEFAULT_MIN_SEND_INTERVAL_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
        max_workers: int = DEFAULT_MAX_WORKERS,
        timeout: Optional[float] = None,
        send_grace: float = DEFAULT_SEND_GRACE_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize pipeline.

        Args:
            store: Subscription store
            source: Content source for posts
            llm: Text generation provider
            delivery: Email delivery provider
            cache: Summary cache shared across runs (a fresh one if omitted)
            timezone: Zone for the cache date and the subtitle date
            max_workers: Subscribers processed in parallel
            timeout: Default run timeout in seconds (None for no limit)
            send_grace: Seconds to wait past the timeout for sends already
                handed to the provider
            sleep: Replacement wait function for every throttle and backoff (tests)
            clock: Returns "now" for date bucketing (tests)
        """
        self.store = store
        self.source = source
        self.llm = llm
        self.delivery = delivery
        self.cache = cache if cache is not None else SummaryCache()
        self.timezone = timezone
        self.title = title
        self.sender = sender
        self.subject = subject
        self.page_size = page_size
        self.max_pages = max_pages
        self.page_timeout = page_timeout
        self.page_delay = page_delay
        self.fetch_workers = fetch_workers
        self.summarize_workers = summarize_workers
        self.min_send_interval = min_send_interval
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_workers = max(1, max_workers)
        self.timeout = timeout
        self.send_grace = send_grace
        self.sleep = sleep
        self.clock = clock
        self.logger = get_logger("pipeline")

    def run_digest_cycle(self, dry_run: bool = False, timeout: Optional[float] = None) -> RunReport:
        """
        Run one digest cycle for every active subscriber.

        Args:
            dry_run: Fetch and summarize, but keep composed emails in
                report.previews instead of sending them
            timeout: Run timeout in seconds; overrides the pipeline default

        Returns:
            RunReport with per-subscriber outcomes and failures

        Raises:
            ConfigError: If the store rejects its credentials
            StoreError: If subscriptions cannot be loaded after retries
        """
        run_start = time.monotonic()
        cancel_event = threading.Event()
        if timeout is None:
            timeout = self.timeout

        self.logger.info("Starting digest cycle%s", " (dry run)" if dry_run else "")

        subscriptions = execute_with_retry(
            self.store.list_active_subscriptions,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            should_retry=retry_unless_fatal,
            cancel_event=cancel_event,
            sleep=self.sleep,
            name="Load subscriptions",
        )

        groups = group_subscriptions(subscriptions)
        if not groups:
            self.logger.info(NO_SUBSCRIPTIONS_MESSAGE)
            return RunReport(message=NO_SUBSCRIPTIONS_MESSAGE, dry_run=dry_run)

        self.logger.info(
            "Loaded %d subscriptions for %d subscribers", len(subscriptions), len(groups)
        )

        now = self.clock() if self.clock else None
        date_bucket = current_date_bucket(self.timezone, now)
        display_date = format_display_date(self.timezone, now)

        fetcher = ContentFetcher(
            self.source,
            page_size=self.page_size,
            max_pages=self.max_pages,
            page_timeout=self.page_timeout,
            page_delay=self.page_delay,
            max_workers=self.fetch_workers,
            sleep=self.sleep,
            cancel_event=cancel_event,
        )
        summarizer = Summarizer(
            self.llm,
            self.cache,
            date_bucket=date_bucket,
            max_workers=self.summarize_workers,
            retry_policy=self._retry_policy(retry_on_transient, cancel_event, "LLM summary"),
        )
        deliverer = Deliverer(
            self.delivery,
            sender=self.sender,
            subject=self.subject,
            min_send_interval=self.min_send_interval,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            sleep=self.sleep,
            cancel_event=cancel_event,
        )

        pool = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(groups)),
            thread_name_prefix="subscriber",
        )
        futures = {
            email: pool.submit(
                self.process_subscriber,
                email, handles, fetcher, summarizer, deliverer, display_date, dry_run,
            )
            for email, handles in groups.items()
        }

        _, not_done = wait_futures(list(futures.values()), timeout=timeout)
        in_flight: List[str] = []
        if not_done:
            self.logger.error(
                "Run timed out after %ss with %d subscribers unfinished", timeout, len(not_done)
            )
            cancel_event.set()
            in_flight = deliverer.cancel()
            if in_flight:
                self.logger.warning(
                    "Waiting up to %ss for %d sends already in progress", self.send_grace, len(in_flight)
                )
                wait_futures([futures[email] for email in in_flight], timeout=self.send_grace)
        pool.shutdown(wait=not not_done, cancel_futures=True)

        report = RunReport(processed=len(groups), dry_run=dry_run)
        for email, future in futures.items():
            preview = None
            unconfirmed = False
            if future.done() and not future.cancelled():
                outcome, preview = future.result()
            else:
                # A send still running may yet succeed, so its outcome is unknown
                unconfirmed = email in in_flight
                if unconfirmed:
                    error = DigestError(ErrorCode.DELIVERY_UNCONFIRMED, f"Send to {email} did not finish in time")
                else:
                    error = DigestError(ErrorCode.RUN_TIMEOUT, f"Digest for {email} did not finish in time")
                outcome = DeliveryOutcome(
                    email=email,
                    status=DeliveryStatus.FAILED,
                    error=str(error),
                    handles=list(groups[email]),
                )

            report.outcomes.append(outcome)
            if outcome.status == DeliveryStatus.FAILED:
                report.failures.append({"email": email, "error": outcome.error or ""})
            if preview is not None:
                report.previews[email] = preview

            if unconfirmed:
                self.logger.warning("Delivery to %s unconfirmed; stored status left unchanged", email)
            else:
                self._record_outcome(email, outcome)

        self._save_cache(date_bucket)

        report.message = self._summary_message(report)
        self.logger.info("%s (%dms)", report.message, elapsed_ms(run_start))
        return report

    def process_subscriber(
        self,
        email: str,
        handles: List[str],
        fetcher: ContentFetcher,
        summarizer: Summarizer,
        deliverer: Deliverer,
        display_date: str,
        dry_run: bool = False,
    ) -> Tuple[DeliveryOutcome, Optional[str]]:
        """
        Fetch, summarize, compose and deliver one subscriber's digest.

        Never raises; failures are returned as a FAILED outcome.

        Returns:
            (outcome, composed html if dry_run else None)
        """
        with subscriber_context(email):
            return self._process_subscriber(
                email, handles, fetcher, summarizer, deliverer, display_date, dry_run
            )

    def _process_subscriber(
        self,
        email: str,
        handles: List[str],
        fetcher: ContentFetcher,
        summarizer: Summarizer,
        deliverer: Deliverer,
        display_date: str,
        dry_run: bool,
    ) -> Tuple[DeliveryOutcome, Optional[str]]:
        start = time.monotonic()
        self.logger.info("Processing %s (%d handles)", email, len(handles))
        post_count = 0

        try:
            posts = fetcher.fetch(handles)
            post_count = len(posts)
            fetch_ms = elapsed_ms(start)

            summary_start = time.monotonic()
            body = summarizer.summarize(posts)
            summarize_ms = elapsed_ms(summary_start)

            html = compose_digest_html(body, display_date, self.title)

            if dry_run:
                self.logger.info(
                    "Dry run: would send %d chars to %s (fetch %dms, summarize %dms)",
                    len(html), email, fetch_ms, summarize_ms
                )
                outcome = DeliveryOutcome(
                    email=email,
                    status=DeliveryStatus.DRY_RUN,
                    handles=list(handles),
                    post_count=post_count,
                )
                return outcome, html

            send_start = time.monotonic()
            outcome = deliverer.deliver(email, html)
            outcome.handles = list(handles)
            outcome.post_count = post_count
            self.logger.info(
                "Finished %s: fetch %dms, summarize %dms, send %dms",
                email, fetch_ms, summarize_ms, elapsed_ms(send_start)
            )
            return outcome, None

        except DigestError as e:
            self.logger.error("Digest for %s failed: %s", email, e)
            error = str(e)
        except Exception as e:
            self.logger.exception("Unexpected error processing %s", email)
            error = str(DigestError(ErrorCode.SCRIPT_EXCEPTION, f"{type(e).__name__}: {e}"))

        outcome = DeliveryOutcome(
            email=email,
            status=DeliveryStatus.FAILED,
            error=error,
            handles=list(handles),
            post_count=post_count,
        )
        return outcome, None

    def _retry_policy(
        self,
        should_retry: Callable[[BaseException], bool],
        cancel_event: threading.Event,
        name: str,
    ) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            should_retry=should_retry,
            cancel_event=cancel_event,
            sleep=self.sleep,
            name=name,
        )

    def _record_outcome(self, email: str, outcome: DeliveryOutcome) -> None:
        try:
            self.store.record_outcome(email, outcome)
        except (DigestError, OSError) as e:
            self.logger.warning("Could not record outcome for %s: %s", email, e)

    def _save_cache(self, date_bucket: str) -> None:
        if not self.cache.path:
            return
        try:
            self.cache.prune(date_bucket)
            self.cache.save()
        except (DigestError, OSError) as e:
            self.logger.warning("Could not save summary cache: %s", e)

    @staticmethod
    def _summary_message(report: RunReport) -> str:
        if report.failures:
            return f"{len(report.failures)} of {report.processed} digests failed"
        if report.dry_run:
            return f"Dry run completed for {report.processed} subscribers"
        return f"Newsletters sent successfully to {report.processed} subscribers"


def build_pipeline(
    config: Dict[str, Any],
    credentials: Optional[Dict[str, Optional[str]]] = None,
    **overrides: Any,
) -> DigestPipeline:
    """
    Construct a pipeline from validated configuration.

    Args:
        config: Validated configuration (see config.load_config)
        credentials: Resolved secrets; read from the environment if omitted
        **overrides: Extra DigestPipeline keyword arguments (e.g. sleep)

    Raises:
        ConfigError: If credentials are missing or a provider is misconfigured
    """
    if credentials is None:
        credentials = resolve_credentials(config)

    store = get_store(config["store"], credentials)
    source_config = dict(config["source"])
    source_config["env_path"] = credentials.get("bird_env_path") or source_config.get("env_path")
    source = get_source(source_config)
    llm = get_llm_provider(config["llm"], credentials.get("llm_api_key"))
    delivery = get_provider(config["delivery"], credentials.get("resend_api_key"))

    cache = SummaryCache(path=config["cache"].get("path"))
    loaded = cache.load()
    if loaded:
        get_logger("pipeline").info("Loaded %d cached summaries", loaded)

    fetch = config["fetch"]
    kwargs: Dict[str, Any] = dict(
        cache=cache,
        timezone=config["timezone"],
        title=config["title"],
        sender=config["delivery"]["from"],
        subject=config["delivery"]["subject"],
        page_size=fetch["page_size"],
        max_pages=fetch["max_pages"],
        page_timeout=fetch["page_timeout_seconds"],
        page_delay=fetch["page_delay_seconds"],
        fetch_workers=fetch["max_workers"],
        summarize_workers=config["llm"].get("max_workers", 4),
        min_send_interval=config["delivery"]["min_send_interval_seconds"],
        max_retries=config["retry"]["max_retries"],
        initial_delay=config["retry"]["initial_delay_seconds"],
        max_workers=config["run"]["max_workers"],
        timeout=config["run"]["timeout_seconds"],
        send_grace=config["run"]["send_grace_seconds"],
    )
    kwargs.update(overrides)

    return DigestPipeline(store, source, llm, delivery, **kwargs)


def run_digest_cycle(
    config: Dict[str, Any],
    dry_run: bool = False,
    timeout: Optional[float] = None,
) -> RunReport:
    """Build a pipeline from config and run one cycle."""
    pipeline = build_pipeline(config)
    return pipeline.run_digest_cycle(dry_run=dry_run, timeout=timeout)
