"""
Digest prompt building and email composition.

Builds the per-handle summary prompts sent to the LLM and assembles the
final HTML email: a fixed wrapper (title and date-stamped subtitle) around
the concatenated per-handle summary blocks.

The LLM is asked for a self-contained styled <div> only; page scaffolding
and the handle header are added here so every block looks the same
regardless of what the model returns.
"""

import html
import re
from typing import Iterable

from .models import HandleDigest


DEFAULT_TITLE = "ByteSized News"
NO_POSTS_NOTE = "No new posts from the accounts you follow today. Check back tomorrow."

CARD_STYLE = (
    "background:white; border:1px solid #eee; border-radius:8px; padding:16px; "
    "margin-bottom:16px; box-shadow:0 2px 4px rgba(0,0,0,0.05)"
)

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


def build_system_instruction(handle: str) -> str:
    """Fixed instruction describing the HTML block the LLM must return."""
    return f"""Generate a concise HTML summary of tweets from @{handle} in exactly this structure:
<div style="{CARD_STYLE}">
  <ul>{{{{tweet_points}}}}</ul>
</div>

Rules:
- Return only the <div> element. No <html>, <head>, <body> or markdown code fences.
- Do not add a heading; the newsletter adds the account name itself.
- One <li> per point, at most one sentence each, with <strong> emphasis on the key phrase.
- Merge tweets about the same topic into a single point."""


def build_user_prompt(handle: str, texts: Iterable[str]) -> str:
    """User message carrying one handle's post texts, separated by blank lines."""
    body = "\n\n".join(texts)
    return (
        f"Summarize tweets from @{handle} into a structured HTML block suitable for "
        "embedding in a modern email newsletter. Follow the style and structure exactly "
        "as described. Use concise bullet points with <strong> emphasis, and wrap the "
        f"entire summary in a styled <div>.\n\nTweets:\n{body}"
    )


def clean_summary_html(text: str) -> str:
    """Strip whitespace and a surrounding markdown code fence from LLM output."""
    text = text.strip()
    match = _CODE_FENCE.match(text)
    if match:
        text = match.group(1).strip()
    return text


def format_handle_block(digest: HandleDigest) -> str:
    """Wrap one handle's summary with a header naming the handle."""
    handle = html.escape(digest.handle)
    return (
        f'<section data-handle="{handle}">\n'
        f'  <h2 style="margin:16px 0 8px;">\U0001F4E2 @{handle}</h2>\n'
        f"  {digest.summary_html}\n"
        "</section>"
    )


def join_handle_blocks(digests: Iterable[HandleDigest]) -> str:
    """Concatenate handle blocks in the given order."""
    return "\n\n".join(format_handle_block(d) for d in digests)


def compose_digest_html(body_html: str, display_date: str, title: str = DEFAULT_TITLE) -> str:
    """
    Wrap the summary body in the newsletter shell.

    Args:
        body_html: Concatenated handle blocks; empty when nothing was posted
        display_date: Date shown in the subtitle, e.g. "19 Oct 2026"
        title: Newsletter title

    Returns:
        Complete HTML email body
    """
    if not body_html.strip():
        body_html = f'<p style="color:#657786;">{html.escape(NO_POSTS_NOTE)}</p>'

    return f"""<div style="max-width:600px; margin:0 auto; padding:20px;">
  <h1 style="color:#1DA1F2; margin-bottom:0;">{html.escape(title)}</h1>
  <p style="color:#657786; margin-top:0;">{html.escape(display_date)} Digest</p>
  {body_html}
</div>"""
