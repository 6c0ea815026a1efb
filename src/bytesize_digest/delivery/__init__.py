"""
Email delivery providers for bytesize-digest.

Provides a pluggable delivery interface; Resend is the production provider.
"""

from .base import DeliveryProvider, MockDeliveryProvider, OutboundEmail, get_provider
from .resend import ResendProvider

__all__ = [
    "DeliveryProvider", "MockDeliveryProvider", "OutboundEmail", "get_provider",
    "ResendProvider",
]
