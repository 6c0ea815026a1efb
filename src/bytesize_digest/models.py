"""
Data models for the digest pipeline.

Defines dataclasses for subscriptions, posts, per-handle digests and
delivery outcomes, plus parsing of raw content-source JSON into SourcePost
objects.

Posts are fetched fresh every run and never mutated; identity is the post id.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, Union
import json

from .errors import SourceError, ErrorCode
from .utils import safe_str


@dataclass(frozen=True)
class Subscription:
    """One (email, handle) row from the subscription store."""
    email: str
    handle: str  # Without @, e.g. "naval"
    active: bool = True


@dataclass(frozen=True)
class SourcePost:
    """
    A post as returned by the content source.

    reply_to is the id of the post being replied to, or None for a
    primary post.
    """
    id: str
    author_handle: str
    text: str
    reply_to: Optional[str] = None
    created_at: str = ""


@dataclass(frozen=True)
class Post:
    """A classified post retained for summarization."""
    id: str
    author_handle: str
    text: str
    is_reply: bool = False


@dataclass
class SearchPage:
    """One page of search results from a content source."""
    items: List[SourcePost]
    has_more: bool = False


@dataclass(frozen=True)
class HandleDigest:
    """Generated summary block for one followed handle."""
    handle: str
    summary_html: str


class DeliveryStatus(Enum):
    """Outcome of one subscriber's branch in a run."""
    SENT = "sent"
    FAILED = "failed"
    DRY_RUN = "dry_run"


@dataclass
class DeliveryOutcome:
    """Per-subscriber result of a digest run."""
    email: str
    status: DeliveryStatus
    message_id: Optional[str] = None
    error: Optional[str] = None
    handles: List[str] = field(default_factory=list)
    post_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status != DeliveryStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form used by the status file."""
        return {
            "email": self.email,
            "status": self.status.value,
            "message_id": self.message_id,
            "error": self.error,
            "handles": list(self.handles),
            "post_count": self.post_count,
        }


@dataclass
class RunReport:
    """Summary of one digest cycle returned to the caller."""
    processed: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)
    outcomes: List[DeliveryOutcome] = field(default_factory=list)
    message: str = ""
    dry_run: bool = False
    previews: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return [o.email for o in self.outcomes if o.ok]

    @property
    def ok(self) -> bool:
        return not self.failures


def parse_source_posts(json_data: Union[str, List[Dict[str, Any]]]) -> List[SourcePost]:
    """
    Parse posts from bird CLI JSON output.

    Args:
        json_data: Raw JSON string or parsed list of post dictionaries

    Returns:
        List of SourcePost objects; malformed entries are skipped

    Raises:
        SourceError: If the payload is not valid JSON or not a list
    """
    if isinstance(json_data, str):
        try:
            data = json.loads(json_data)
        except json.JSONDecodeError as e:
            raise SourceError(
                ErrorCode.SOURCE_JSON_PARSE_ERROR,
                f"Invalid JSON: {str(e)}"
            )
    else:
        data = json_data

    # bird search may wrap results as {"tweets": [...]}
    if isinstance(data, dict) and isinstance(data.get("tweets"), list):
        data = data["tweets"]

    if not isinstance(data, list):
        raise SourceError(
            ErrorCode.SOURCE_JSON_PARSE_ERROR,
            "Expected JSON array of posts"
        )

    posts = []
    for post_data in data:
        try:
            posts.append(_parse_single_post(post_data))
        except (KeyError, TypeError, ValueError):
            # Skip malformed posts but keep the rest of the page
            continue

    return posts


def _parse_single_post(data: Dict[str, Any]) -> SourcePost:
    """Parse a single post from JSON data."""
    for required in ("id", "text", "author"):
        if required not in data or data[required] is None:
            raise KeyError(f"Missing required field: {required}")

    author = data["author"]
    if not isinstance(author, dict) or not author.get("username"):
        raise ValueError("Invalid author data: missing username")

    reply_to = data.get("inReplyToStatusId") or data.get("replyTo")

    return SourcePost(
        id=safe_str(data["id"]),
        author_handle=safe_str(author["username"]),
        text=safe_str(data.get("text"), ""),
        reply_to=safe_str(reply_to) if reply_to else None,
        created_at=safe_str(data.get("createdAt"), ""),
    )
