"""
Base delivery provider interface.

Defines the abstract interface for email delivery providers, a mock
implementation for testing, and provider construction from configuration.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import ConfigError, DeliveryError, ErrorCode, RateLimitedError


DEFAULT_SENDER = "ByteSize <hello@autodm.in>"
DEFAULT_SUBJECT = "Your Daily Twitter Digest"


@dataclass(frozen=True)
class OutboundEmail:
    """A composed email ready to hand to a provider."""
    sender: str
    to: str
    subject: str
    html: str


class DeliveryProvider(ABC):
    """Base class for all email delivery providers."""

    @abstractmethod
    def send(self, email: OutboundEmail) -> str:
        """
        Send an email.

        Args:
            email: Composed message

        Returns:
            Delivery id assigned by the provider ("" if none was returned)

        Raises:
            RateLimitedError: If the provider throttled the request
            DeliveryError: If sending fails
        """
        pass

    @property
    def name(self) -> str:
        """Provider name for logging."""
        return self.__class__.__name__


class MockDeliveryProvider(DeliveryProvider):
    """
    Mock delivery provider for testing.

    Simulates sending with configurable success/failure behavior and records
    every attempt. Safe to call from several worker threads at once.
    """

    def __init__(
        self,
        success: bool = True,
        message_id: str = "mock_msg_123",
        error: Optional[str] = None,
        rate_limit_count: int = 0,
        fail_on_recipient: Optional[List[str]] = None,
    ):
        """
        Initialize mock provider.

        Args:
            success: Whether sends should succeed
            message_id: Delivery id to return on success ("" simulates a
                response without an id)
            error: Error code name raised when success is False
            rate_limit_count: Number of calls answered with a rate limit first
            fail_on_recipient: Recipients whose sends always fail
        """
        self.success = success
        self.message_id = message_id
        self.error = error
        self.rate_limit_count = rate_limit_count
        self.fail_on_recipient = fail_on_recipient or []

        self.sends: List[Dict[str, Any]] = []
        self._call_count = 0
        self._lock = threading.Lock()

    def send(self, email: OutboundEmail) -> str:
        """Mock send implementation."""
        with self._lock:
            self._call_count += 1
            call_number = self._call_count
            self.sends.append({
                "to": email.to,
                "subject": email.subject,
                "html": email.html,
                "sender": email.sender,
                "timestamp": time.time(),
            })

        if call_number <= self.rate_limit_count:
            raise RateLimitedError(ErrorCode.DELIVERY_RATE_LIMITED, "Configured rate limit")

        if email.to in self.fail_on_recipient:
            raise DeliveryError(ErrorCode.DELIVERY_SEND_FAILED, "Configured to fail")

        if not self.success:
            error_map = {
                "RATE_LIMITED": ErrorCode.DELIVERY_RATE_LIMITED,
                "AUTH_FAILED": ErrorCode.DELIVERY_AUTH_FAILED,
                "RECIPIENT_INVALID": ErrorCode.DELIVERY_RECIPIENT_INVALID,
            }
            raise DeliveryError(error_map.get(self.error, ErrorCode.DELIVERY_SEND_FAILED))

        return self.message_id

    def sent_to(self) -> List[str]:
        """Recipients of every recorded attempt, in call order."""
        return [s["to"] for s in self.sends]

    def reset(self):
        """Reset call tracking."""
        self.sends = []
        self._call_count = 0


def get_provider(config: Dict[str, Any], api_key: Optional[str]) -> DeliveryProvider:
    """
    Get delivery provider instance from configuration.

    Args:
        config: The "delivery" configuration section
        api_key: Provider API key resolved from the environment

    Returns:
        Configured delivery provider instance

    Raises:
        ConfigError: If provider not found or misconfigured
    """
    provider_type = config.get("provider")

    if not provider_type:
        raise ConfigError(ErrorCode.CONFIG_MISSING_REQUIRED_FIELD, "delivery.provider required")

    if provider_type == "resend":
        if not api_key:
            raise ConfigError(ErrorCode.CONFIG_MISSING_CREDENTIALS, "RESEND_API_KEY not set")
        from .resend import ResendProvider
        return ResendProvider(
            api_key=api_key,
            timeout=config.get("timeout_seconds", 15),
        )

    raise ConfigError(
        ErrorCode.CONFIG_INVALID_VALUE,
        f"Unknown delivery provider: {provider_type}"
    )
