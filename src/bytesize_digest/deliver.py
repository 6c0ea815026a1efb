"""
Paced email delivery with rate-limit retries.

Every send attempt, including retries, is preceded by a fixed pause so a
run never exceeds the provider's request rate. Only rate-limit failures
are retried; anything else fails the subscriber immediately.

Once a run is cancelled no new send starts. A send already handed to the
provider cannot be recalled, so the Deliverer reports which recipients are
mid-send at cancellation and the caller decides how long to wait for them.
"""

import threading
from typing import Callable, List, Optional, Set

from .delivery.base import DEFAULT_SENDER, DEFAULT_SUBJECT, DeliveryProvider, OutboundEmail
from .errors import DeliveryError, DigestError, ErrorCode, RunCancelledError
from .logging import get_logger
from .models import DeliveryOutcome, DeliveryStatus
from .retry import (
    DEFAULT_INITIAL_DELAY_SECONDS, DEFAULT_MAX_RETRIES, RetryPolicy, retry_on_rate_limit
)
from .utils import wait


DEFAULT_MIN_SEND_INTERVAL_SECONDS = 0.5


class Deliverer:
    """Sends one composed digest per subscriber."""

    def __init__(
        self,
        provider: DeliveryProvider,
        sender: str = DEFAULT_SENDER,
        subject: str = DEFAULT_SUBJECT,
        min_send_interval: float = DEFAULT_MIN_SEND_INTERVAL_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.provider = provider
        self.sender = sender
        self.subject = subject
        self.min_send_interval = min_send_interval
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.logger = get_logger("deliver")
        self._lock = threading.Lock()
        self._cancelled = False
        self._in_flight: Set[str] = set()

    def compose(self, email: str, body: str) -> OutboundEmail:
        return OutboundEmail(sender=self.sender, to=email, subject=self.subject, html=body)

    def deliver(self, email: str, body: str) -> DeliveryOutcome:
        """
        Send body to email.

        Returns:
            DeliveryOutcome with status SENT and the provider's delivery id

        Raises:
            DeliveryError: If the send fails, retries are exhausted, or the
                provider returns no delivery id. The underlying error is
                chained as __cause__.
            RunCancelledError: If the run is cancelled during a wait
        """
        message = self.compose(email, body)
        policy = RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            should_retry=retry_on_rate_limit,
            cancel_event=self.cancel_event,
            sleep=self.sleep,
            name=f"Send to {email}",
        )

        def attempt() -> str:
            self._wait(self.min_send_interval)
            self._begin_send(email)
            try:
                return self.provider.send(message)
            finally:
                with self._lock:
                    self._in_flight.discard(email)

        self.logger.info("Sending digest to %s via %s", email, self.provider.name)
        try:
            message_id = policy.execute(attempt)
        except (DeliveryError, RunCancelledError):
            raise
        except DigestError as e:
            raise DeliveryError(e.code, f"Send to {email} failed: {e.message}") from e
        except Exception as e:
            raise DeliveryError(ErrorCode.DELIVERY_SEND_FAILED, f"Send to {email} failed: {e}") from e

        if not message_id:
            raise DeliveryError(
                ErrorCode.DELIVERY_INVALID_RESPONSE,
                f"Provider returned no delivery id for {email}"
            )

        self.logger.info("Digest sent to %s (id %s)", email, message_id)
        return DeliveryOutcome(email=email, status=DeliveryStatus.SENT, message_id=message_id)

    def cancel(self) -> List[str]:
        """
        Refuse any further sends.

        Returns:
            Recipients whose send had already started, sorted
        """
        with self._lock:
            self._cancelled = True
            if self.cancel_event is not None:
                self.cancel_event.set()
            return sorted(self._in_flight)

    def _begin_send(self, email: str) -> None:
        with self._lock:
            if self._cancelled or (self.cancel_event is not None and self.cancel_event.is_set()):
                raise RunCancelledError(f"Run cancelled before sending to {email}")
            self._in_flight.add(email)

    def _wait(self, seconds: float) -> None:
        if self.sleep is not None:
            self.sleep(seconds)
            return
        wait(seconds, self.cancel_event)
