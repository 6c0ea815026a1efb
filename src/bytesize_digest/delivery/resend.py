"""
Resend email delivery provider.

Sends HTML email through the Resend REST API. A 429 response is raised as
RateLimitedError so the deliverer's backoff can retry it; every other
failure is a DeliveryError.
"""

import requests

from .base import DeliveryProvider, OutboundEmail
from ..errors import DeliveryError, ErrorCode, RateLimitedError, TransientNetworkError
from ..utils import safe_str, truncate_text


RESEND_API_URL = "https://api.resend.com/emails"


class ResendProvider(DeliveryProvider):
    """Resend API email delivery provider."""

    def __init__(self, api_key: str, timeout: float = 15, api_url: str = RESEND_API_URL):
        """
        Initialize Resend provider.

        Args:
            api_key: Resend API key
            timeout: HTTP timeout in seconds
            api_url: Endpoint override (tests)
        """
        self.api_key = api_key
        self.timeout = timeout
        self.api_url = api_url

    def send(self, email: OutboundEmail) -> str:
        """
        Send an email via Resend.

        Returns:
            Resend email id, or "" if the response carried none

        Raises:
            RateLimitedError: On HTTP 429
            DeliveryError: If sending fails
        """
        payload = {
            "from": email.sender,
            "to": [email.to],
            "subject": email.subject,
            "html": email.html,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout:
            raise TransientNetworkError(ErrorCode.DELIVERY_NETWORK_ERROR, "Resend request timed out")
        except requests.RequestException as e:
            raise DeliveryError(ErrorCode.DELIVERY_NETWORK_ERROR, str(e))

        if response.status_code == 429:
            raise RateLimitedError(ErrorCode.DELIVERY_RATE_LIMITED, _error_message(response))
        elif response.status_code in (401, 403):
            raise DeliveryError(ErrorCode.DELIVERY_AUTH_FAILED, _error_message(response))
        elif response.status_code == 422:
            raise DeliveryError(ErrorCode.DELIVERY_RECIPIENT_INVALID, _error_message(response))
        elif response.status_code >= 400:
            raise DeliveryError(
                ErrorCode.DELIVERY_SEND_FAILED,
                f"HTTP {response.status_code}: {_error_message(response)}"
            )

        try:
            data = response.json()
        except ValueError:
            raise DeliveryError(ErrorCode.DELIVERY_INVALID_RESPONSE, "Resend returned non-JSON body")

        if not isinstance(data, dict):
            return ""
        return safe_str(data.get("id"))


def _error_message(response: requests.Response) -> str:
    """Best-effort error message from a Resend error body."""
    try:
        data = response.json()
        if isinstance(data, dict) and data.get("message"):
            return safe_str(data["message"])
    except ValueError:
        pass
    return truncate_text(response.text or f"HTTP {response.status_code}", 200)
