"""Tests for paced email delivery."""

import threading

import pytest

from bytesize_digest.deliver import Deliverer
from bytesize_digest.delivery.base import MockDeliveryProvider
from bytesize_digest.errors import (
    DeliveryError, ErrorCode, RateLimitedError, RunCancelledError, TransientNetworkError,
)
from bytesize_digest.models import DeliveryStatus


class BlockingProvider(MockDeliveryProvider):
    """Signals when a send starts, then blocks until released."""

    def __init__(self, started, release):
        super().__init__()
        self.started = started
        self.release = release

    def send(self, email):
        self.started.set()
        self.release.wait(5)
        return super().send(email)


class RaisingProvider(MockDeliveryProvider):
    """Raises a fixed exception on every send."""

    def __init__(self, exc):
        super().__init__()
        self.exc = exc

    def send(self, email):
        super().send(email)
        raise self.exc


def make_deliverer(provider, **kwargs):
    sleeps = []
    kwargs.setdefault("sleep", sleeps.append)
    return Deliverer(provider, **kwargs), sleeps


class TestDeliver:
    """Tests for Deliverer.deliver."""

    def test_success(self):
        provider = MockDeliveryProvider(message_id="m1")
        deliverer, sleeps = make_deliverer(provider)

        outcome = deliverer.deliver("alice@example.com", "<div>d</div>")

        assert outcome.status == DeliveryStatus.SENT
        assert outcome.message_id == "m1"
        assert outcome.email == "alice@example.com"
        assert sleeps == [0.5]
        assert provider.sends[0]["subject"] == "Your Daily Twitter Digest"

    def test_rate_limited_twice_then_sent(self):
        """Each attempt is throttled; rate limits back off 1s then 2s."""
        provider = MockDeliveryProvider(rate_limit_count=2)
        deliverer, sleeps = make_deliverer(provider, min_send_interval=0.5, initial_delay=1.0)

        outcome = deliverer.deliver("alice@example.com", "body")

        assert outcome.status == DeliveryStatus.SENT
        assert len(provider.sends) == 3
        assert sleeps == [0.5, 1.0, 0.5, 2.0, 0.5]

    def test_rate_limit_exhausted(self):
        provider = MockDeliveryProvider(rate_limit_count=10)
        deliverer, _ = make_deliverer(provider, max_retries=3)

        with pytest.raises(DeliveryError) as exc:
            deliverer.deliver("alice@example.com", "body")

        assert exc.value.code == ErrorCode.DELIVERY_RATE_LIMITED
        assert isinstance(exc.value.__cause__, RateLimitedError)
        assert len(provider.sends) == 4

    def test_other_errors_not_retried(self):
        provider = MockDeliveryProvider(success=False, error="AUTH_FAILED")
        deliverer, sleeps = make_deliverer(provider)

        with pytest.raises(DeliveryError) as exc:
            deliverer.deliver("alice@example.com", "body")

        assert exc.value.code == ErrorCode.DELIVERY_AUTH_FAILED
        assert len(provider.sends) == 1
        assert sleeps == [0.5]

    def test_transient_error_wrapped(self):
        provider = RaisingProvider(TransientNetworkError(ErrorCode.DELIVERY_NETWORK_ERROR))
        deliverer, _ = make_deliverer(provider)

        with pytest.raises(DeliveryError) as exc:
            deliverer.deliver("alice@example.com", "body")

        assert exc.value.code == ErrorCode.DELIVERY_NETWORK_ERROR
        assert isinstance(exc.value.__cause__, TransientNetworkError)
        assert len(provider.sends) == 1

    def test_unexpected_error_wrapped(self):
        provider = RaisingProvider(RuntimeError("socket closed"))
        deliverer, _ = make_deliverer(provider)

        with pytest.raises(DeliveryError) as exc:
            deliverer.deliver("alice@example.com", "body")

        assert exc.value.code == ErrorCode.DELIVERY_SEND_FAILED
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_missing_delivery_id(self):
        provider = MockDeliveryProvider(message_id="")
        deliverer, _ = make_deliverer(provider)

        with pytest.raises(DeliveryError) as exc:
            deliverer.deliver("alice@example.com", "body")

        assert exc.value.code == ErrorCode.DELIVERY_INVALID_RESPONSE

    def test_cancelled_before_send(self):
        event = threading.Event()
        event.set()
        provider = MockDeliveryProvider()
        deliverer = Deliverer(provider, cancel_event=event)

        with pytest.raises(RunCancelledError):
            deliverer.deliver("alice@example.com", "body")

        assert provider.sends == []

    def test_cancel_refuses_later_sends(self):
        provider = MockDeliveryProvider()
        deliverer = Deliverer(provider, sleep=lambda s: None)

        assert deliverer.cancel() == []
        with pytest.raises(RunCancelledError):
            deliverer.deliver("alice@example.com", "body")

        assert provider.sends == []

    def test_cancel_reports_send_in_progress(self):
        """A recipient whose send has started is returned, and that send completes."""
        started = threading.Event()
        release = threading.Event()
        provider = BlockingProvider(started, release)
        deliverer = Deliverer(provider, sleep=lambda s: None)
        results = []

        worker = threading.Thread(
            target=lambda: results.append(deliverer.deliver("alice@example.com", "body"))
        )
        worker.start()
        try:
            assert started.wait(5)
            assert deliverer.cancel() == ["alice@example.com"]
        finally:
            release.set()
            worker.join(5)

        assert results[0].status == DeliveryStatus.SENT
        assert deliverer.cancel() == []


def test_compose_uses_sender_and_subject():
    deliverer = Deliverer(MockDeliveryProvider(), sender="Me <me@x.io>", subject="Hi")
    email = deliverer.compose("bob@example.com", "<p/>")
    assert email.sender == "Me <me@x.io>"
    assert email.subject == "Hi"
    assert email.to == "bob@example.com"
    assert email.html == "<p/>"
