"""
Post classification and grouping.

Provides functions for:
- Classifying posts as primary posts or replies
- Splitting a page of results into kept primary posts and discarded replies
- Deduplicating posts by id
- Grouping posts by author handle for per-handle summarization

Only primary posts are ever summarized; replies are dropped right after
retrieval.
"""

from enum import Enum
from typing import Dict, Iterable, List, Tuple

from .models import Post, SourcePost


class PostType(Enum):
    """Classification of post types."""
    PRIMARY = "primary"  # Original post, no reply target
    REPLY = "reply"  # Reply to another post


def classify_post(post: SourcePost) -> PostType:
    """
    Classify a post by its type.

    A post is primary iff it has no reply-target reference.
    """
    if post.reply_to is not None:
        return PostType.REPLY
    return PostType.PRIMARY


def to_post(source_post: SourcePost) -> Post:
    """Convert a content-source post into the pipeline's Post model."""
    return Post(
        id=source_post.id,
        author_handle=source_post.author_handle,
        text=source_post.text,
        is_reply=classify_post(source_post) == PostType.REPLY,
    )


def segregate_posts(posts: Iterable[SourcePost]) -> Tuple[List[Post], List[Post]]:
    """
    Split posts into primary posts and replies, preserving order.

    Returns:
        (primary_posts, replies)
    """
    primary: List[Post] = []
    replies: List[Post] = []

    for source_post in posts:
        post = to_post(source_post)
        if post.is_reply:
            replies.append(post)
        else:
            primary.append(post)

    return primary, replies


def dedupe_posts(posts: Iterable[Post]) -> List[Post]:
    """Drop repeated post ids, keeping the first occurrence."""
    seen = set()
    result = []
    for post in posts:
        if post.id in seen:
            continue
        seen.add(post.id)
        result.append(post)
    return result


def group_by_author(posts: Iterable[Post]) -> Dict[str, List[Post]]:
    """
    Group primary posts by author handle.

    Args:
        posts: Posts in retrieval order

    Returns:
        Dictionary mapping handle to its posts in retrieval order. Handle
        order follows first appearance, which depends on which fetch
        finished first and is not stable between runs.
    """
    groups: Dict[str, List[Post]] = {}

    for post in dedupe_posts(posts):
        if post.is_reply:
            continue
        groups.setdefault(post.author_handle, []).append(post)

    return groups
