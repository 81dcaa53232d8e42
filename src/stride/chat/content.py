"""Message content helpers for inline image references.

Two shapes are understood: the ``[Image: url]`` suffix this service
writes when a message is posted with an attachment, and markdown
``![alt](url)`` that clients may paste in directly.
"""

from __future__ import annotations

import re

_MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\(([^)\s]+)\)")
_TAGGED_IMAGE = re.compile(r"\[Image:\s*([^\]\s]+)\s*\]")


def append_image(content: str, url: str) -> str:
    """Return *content* with an ``[Image: url]`` reference appended."""
    tag = f"[Image: {url}]"
    if not content.strip():
        return tag
    return f"{content.rstrip()}\n\n{tag}"


def extract_image_url(content: str) -> str | None:
    """First image URL referenced in *content*, if any."""
    match = _MARKDOWN_IMAGE.search(content)
    if match is None:
        match = _TAGGED_IMAGE.search(content)
    return match.group(1) if match else None


def strip_image_refs(content: str) -> str:
    """*content* with every image reference removed."""
    text = _MARKDOWN_IMAGE.sub("", content)
    text = _TAGGED_IMAGE.sub("", text)
    return text.strip()
