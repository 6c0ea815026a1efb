"""
ByteSize Digest: personalized Twitter digests by email.

Each subscriber follows a set of Twitter handles. Once per run the pipeline
fetches every followed handle's recent posts, summarizes them per handle with
an LLM, and emails each subscriber a single digest.

This package provides:
- Paginated, time-bounded fetching of recent posts via the bird CLI
- Per-handle LLM summaries, cached per handle and day across subscribers
- Paced email delivery with rate-limit backoff
- Per-subscriber failure isolation and a run report
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from .errors import (
    ErrorCode, DigestError, ConfigError, ContentUnavailableError, DeliveryError,
    LLMError, RateLimitedError, TransientNetworkError,
)
from .models import Subscription, Post, HandleDigest, DeliveryOutcome, DeliveryStatus, RunReport
from .config import load_config

__all__ = [
    "ErrorCode", "DigestError", "ConfigError", "ContentUnavailableError", "DeliveryError",
    "LLMError", "RateLimitedError", "TransientNetworkError",
    "Subscription", "Post", "HandleDigest", "DeliveryOutcome", "DeliveryStatus", "RunReport",
    "load_config",
]
