"""
Error codes and custom exceptions for bytesize-digest.

Defines a structured error code system shared by every stage of the digest
pipeline (subscription store, content source, LLM, email delivery).

All exceptions carry a predefined code from the ErrorCode enum. Retry policies
and the run report classify failures by code, so a rate-limited send and a
rate-limited LLM call are recognized the same way regardless of which
provider raised them.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Predefined error codes for structured error handling."""

    # Configuration errors
    CONFIG_FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    CONFIG_INVALID_JSON = "CONFIG_INVALID_JSON"
    CONFIG_VERSION_MISMATCH = "CONFIG_VERSION_MISMATCH"
    CONFIG_MISSING_REQUIRED_FIELD = "CONFIG_MISSING_REQUIRED_FIELD"
    CONFIG_INVALID_VALUE = "CONFIG_INVALID_VALUE"
    CONFIG_MISSING_CREDENTIALS = "CONFIG_MISSING_CREDENTIALS"

    # Subscription store errors
    STORE_AUTH_FAILED = "STORE_AUTH_FAILED"
    STORE_RATE_LIMITED = "STORE_RATE_LIMITED"
    STORE_NETWORK_ERROR = "STORE_NETWORK_ERROR"
    STORE_QUERY_FAILED = "STORE_QUERY_FAILED"
    STORE_FILE_CORRUPT = "STORE_FILE_CORRUPT"
    STORE_FILE_LOCKED = "STORE_FILE_LOCKED"

    # Content source errors
    SOURCE_AUTH_FAILED = "SOURCE_AUTH_FAILED"
    SOURCE_RATE_LIMITED = "SOURCE_RATE_LIMITED"
    SOURCE_NETWORK_ERROR = "SOURCE_NETWORK_ERROR"
    SOURCE_TIMEOUT = "SOURCE_TIMEOUT"
    SOURCE_HANDLE_NOT_FOUND = "SOURCE_HANDLE_NOT_FOUND"
    SOURCE_COMMAND_FAILED = "SOURCE_COMMAND_FAILED"
    SOURCE_JSON_PARSE_ERROR = "SOURCE_JSON_PARSE_ERROR"
    CONTENT_UNAVAILABLE = "CONTENT_UNAVAILABLE"

    # LLM API errors
    LLM_API_AUTH = "LLM_API_AUTH"
    LLM_RATE_LIMITED = "LLM_RATE_LIMITED"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_NETWORK_ERROR = "LLM_NETWORK_ERROR"
    LLM_EMPTY_RESPONSE = "LLM_EMPTY_RESPONSE"
    LLM_INVALID_RESPONSE = "LLM_INVALID_RESPONSE"
    LLM_QUOTA_EXCEEDED = "LLM_QUOTA_EXCEEDED"

    # Delivery errors
    DELIVERY_AUTH_FAILED = "DELIVERY_AUTH_FAILED"
    DELIVERY_SEND_FAILED = "DELIVERY_SEND_FAILED"
    DELIVERY_RATE_LIMITED = "DELIVERY_RATE_LIMITED"
    DELIVERY_INVALID_RESPONSE = "DELIVERY_INVALID_RESPONSE"
    DELIVERY_RECIPIENT_INVALID = "DELIVERY_RECIPIENT_INVALID"
    DELIVERY_NETWORK_ERROR = "DELIVERY_NETWORK_ERROR"
    DELIVERY_UNCONFIRMED = "DELIVERY_UNCONFIRMED"

    # Run control
    RUN_CANCELLED = "RUN_CANCELLED"
    RUN_TIMEOUT = "RUN_TIMEOUT"

    # File system
    WRITE_PERMISSION_DENIED = "WRITE_PERMISSION_DENIED"

    # Generic/system errors
    SCRIPT_EXCEPTION = "SCRIPT_EXCEPTION"


# Human-readable descriptions for error codes
ERROR_DESCRIPTIONS = {
    # Configuration
    ErrorCode.CONFIG_FILE_NOT_FOUND: "Configuration file not found in search paths",
    ErrorCode.CONFIG_INVALID_JSON: "Configuration file contains invalid JSON",
    ErrorCode.CONFIG_VERSION_MISMATCH: "Configuration version not supported",
    ErrorCode.CONFIG_MISSING_REQUIRED_FIELD: "Required configuration field missing",
    ErrorCode.CONFIG_INVALID_VALUE: "Configuration field has invalid value",
    ErrorCode.CONFIG_MISSING_CREDENTIALS: "Required credentials not set in environment",

    # Store
    ErrorCode.STORE_AUTH_FAILED: "Subscription store authentication failed",
    ErrorCode.STORE_RATE_LIMITED: "Subscription store rate limit exceeded",
    ErrorCode.STORE_NETWORK_ERROR: "Network error querying subscription store",
    ErrorCode.STORE_QUERY_FAILED: "Subscription store query failed",
    ErrorCode.STORE_FILE_CORRUPT: "Subscription file corrupted",
    ErrorCode.STORE_FILE_LOCKED: "Status file locked by another process",

    # Content source
    ErrorCode.SOURCE_AUTH_FAILED: "Content source authentication failed (cookies expired)",
    ErrorCode.SOURCE_RATE_LIMITED: "Content source rate limit exceeded",
    ErrorCode.SOURCE_NETWORK_ERROR: "Network error fetching posts",
    ErrorCode.SOURCE_TIMEOUT: "Content source request timed out",
    ErrorCode.SOURCE_HANDLE_NOT_FOUND: "Handle not found or not accessible",
    ErrorCode.SOURCE_COMMAND_FAILED: "bird CLI command failed",
    ErrorCode.SOURCE_JSON_PARSE_ERROR: "Failed to parse content source output",
    ErrorCode.CONTENT_UNAVAILABLE: "Posts for handle could not be retrieved",

    # LLM
    ErrorCode.LLM_API_AUTH: "LLM API authentication failed",
    ErrorCode.LLM_RATE_LIMITED: "LLM API rate limit exceeded",
    ErrorCode.LLM_TIMEOUT: "LLM API request timed out",
    ErrorCode.LLM_NETWORK_ERROR: "Network error calling LLM API",
    ErrorCode.LLM_EMPTY_RESPONSE: "LLM returned empty response",
    ErrorCode.LLM_INVALID_RESPONSE: "LLM response format invalid",
    ErrorCode.LLM_QUOTA_EXCEEDED: "LLM API quota exceeded",

    # Delivery
    ErrorCode.DELIVERY_AUTH_FAILED: "Email delivery authentication failed",
    ErrorCode.DELIVERY_SEND_FAILED: "Failed to send email",
    ErrorCode.DELIVERY_RATE_LIMITED: "Email delivery rate limited",
    ErrorCode.DELIVERY_INVALID_RESPONSE: "Email provider returned no delivery id",
    ErrorCode.DELIVERY_RECIPIENT_INVALID: "Invalid recipient address",
    ErrorCode.DELIVERY_NETWORK_ERROR: "Network error during delivery",
    ErrorCode.DELIVERY_UNCONFIRMED: "Send was still in progress when the run timed out",

    # Run control
    ErrorCode.RUN_CANCELLED: "Digest run cancelled",
    ErrorCode.RUN_TIMEOUT: "Digest run timed out before subscriber finished",

    # File system
    ErrorCode.WRITE_PERMISSION_DENIED: "Permission denied writing to file",

    # System
    ErrorCode.SCRIPT_EXCEPTION: "Unhandled exception in script",
}


# Codes that mean "slow down and try again"
RATE_LIMIT_CODES = frozenset({
    ErrorCode.STORE_RATE_LIMITED,
    ErrorCode.SOURCE_RATE_LIMITED,
    ErrorCode.LLM_RATE_LIMITED,
    ErrorCode.DELIVERY_RATE_LIMITED,
})

# Codes for timeouts and connection failures
NETWORK_CODES = frozenset({
    ErrorCode.STORE_NETWORK_ERROR,
    ErrorCode.SOURCE_NETWORK_ERROR,
    ErrorCode.SOURCE_TIMEOUT,
    ErrorCode.LLM_TIMEOUT,
    ErrorCode.LLM_NETWORK_ERROR,
    ErrorCode.DELIVERY_NETWORK_ERROR,
})


class DigestError(Exception):
    """Base exception class for all bytesize-digest errors."""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = code
        self.message = message or ERROR_DESCRIPTIONS.get(code, str(code.value))
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class ConfigError(DigestError):
    """Configuration file, validation or missing-credential errors. Never retried."""
    pass


class TransientNetworkError(DigestError):
    """Timeout or connection failure. Safe to retry."""
    pass


class RateLimitedError(DigestError):
    """Provider rejected the call with a 429-class response. Retry with backoff."""
    pass


class StoreError(DigestError):
    """Subscription store errors."""
    pass


class SourceError(DigestError):
    """Content source (bird CLI / Twitter) errors."""
    pass


class ContentUnavailableError(SourceError):
    """A single handle's posts could not be fetched."""

    def __init__(self, handle: str, message: Optional[str] = None):
        self.handle = handle
        super().__init__(ErrorCode.CONTENT_UNAVAILABLE, message or f"No posts available for @{handle}")


class LLMError(DigestError):
    """LLM provider API errors."""
    pass


class DeliveryError(DigestError):
    """Email delivery errors."""
    pass


class RunCancelledError(DigestError):
    """Raised from a throttle or backoff wait once the run has been cancelled."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(ErrorCode.RUN_CANCELLED, message)


def is_rate_limited(error: BaseException) -> bool:
    """True for rate-limit-class failures from any provider."""
    if isinstance(error, RateLimitedError):
        return True
    return isinstance(error, DigestError) and error.code in RATE_LIMIT_CODES


def is_transient(error: BaseException) -> bool:
    """True for failures worth retrying: timeouts, connection errors, rate limits."""
    if isinstance(error, (TransientNetworkError, RateLimitedError)):
        return True
    return isinstance(error, DigestError) and (
        error.code in NETWORK_CODES or error.code in RATE_LIMIT_CODES
    )
