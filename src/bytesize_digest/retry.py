"""
Bounded retry with exponential backoff.

A single parametrized executor used by every network-calling component.
Whether an error is worth retrying is decided by a predicate, so call sites
choose the policy instead of copying backoff loops:

- retry_unless_fatal: anything except configuration errors (store queries)
- retry_on_rate_limit: only 429-class failures (email sends)
- retry_on_transient: timeouts, connection failures and rate limits (LLM calls)

Delays double on each retry with no jitter: initial_delay * 2**retry_count.
"""

import threading
from typing import Any, Callable, Optional, TypeVar

from .errors import ConfigError, is_rate_limited, is_transient
from .logging import get_logger
from .utils import wait


T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_SECONDS = 1.0


def retry_unless_fatal(error: BaseException) -> bool:
    """Retry every error except configuration errors."""
    return not isinstance(error, ConfigError)


def retry_on_rate_limit(error: BaseException) -> bool:
    """Retry only rate-limit-class errors."""
    return is_rate_limited(error)


def retry_on_transient(error: BaseException) -> bool:
    """Retry timeouts, connection failures and rate limits."""
    return is_transient(error)


class RetryPolicy:
    """Executes an operation, retrying failures that match a predicate."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
        should_retry: Callable[[BaseException], bool] = retry_unless_fatal,
        cancel_event: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], None]] = None,
        name: str = "operation",
    ):
        """
        Initialize retry policy.

        Args:
            max_retries: Retries after the first attempt (3 means up to 4 calls)
            initial_delay: Seconds to wait before the first retry
            should_retry: Predicate deciding whether an error is retryable
            cancel_event: Run cancellation event; backoff waits abort when set
            sleep: Replacement wait function (tests)
            name: Label used in log messages
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")

        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.should_retry = should_retry
        self.cancel_event = cancel_event
        self.sleep = sleep
        self.name = name
        self.logger = get_logger("retry")

    def delay_for(self, retry_count: int) -> float:
        """Backoff before retry number retry_count (0-based)."""
        return self.initial_delay * (2 ** retry_count)

    def execute(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Call operation, retrying on retryable failures.

        Returns:
            Whatever operation returns

        Raises:
            The last error unchanged once it is not retryable or retries run out.
            RunCancelledError if the run is cancelled during a backoff wait.
        """
        retries = 0
        while True:
            try:
                return operation(*args, **kwargs)
            except Exception as e:
                if retries >= self.max_retries or not self.should_retry(e):
                    raise

                delay = self.delay_for(retries)
                self.logger.warning(
                    "%s failed (%s). Retrying in %.1fs (retry %d/%d)",
                    self.name, e, delay, retries + 1, self.max_retries
                )
                self._wait(delay)
                retries += 1

    def _wait(self, seconds: float) -> None:
        if self.sleep is not None:
            self.sleep(seconds)
            return
        wait(seconds, self.cancel_event)


def execute_with_retry(
    operation: Callable[[], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
    should_retry: Callable[[BaseException], bool] = retry_unless_fatal,
    **kwargs: Any,
) -> T:
    """One-off form of RetryPolicy(...).execute(operation)."""
    policy = RetryPolicy(
        max_retries=max_retries,
        initial_delay=initial_delay,
        should_retry=should_retry,
        **kwargs,
    )
    return policy.execute(operation)
