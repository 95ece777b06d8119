"""Conversion between topic ids (channel ids) and hub topic URLs."""

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qs, urlencode, urlsplit


def topic_url(feed_base_url: str, topic_id: str) -> str:
    """Canonical feed URL for ``topic_id``: ``<feed-base>?channel_id=<topic_id>``."""
    return f"{feed_base_url}?{urlencode({'channel_id': topic_id})}"


def topic_id_from_url(feed_base_url: str, topic: str) -> Optional[str]:
    """Extract the channel id from a topic URL.

    Returns ``None`` when ``topic`` is not a feed URL under
    ``feed_base_url`` or does not carry exactly one non-empty
    ``channel_id``.
    """
    base = urlsplit(feed_base_url)
    parsed = urlsplit(topic)
    if (parsed.scheme, parsed.netloc.lower(), parsed.path) != (
        base.scheme,
        base.netloc.lower(),
        base.path,
    ):
        return None
    values = parse_qs(parsed.query).get("channel_id", [])
    if len(values) != 1 or not values[0]:
        return None
    return values[0]
