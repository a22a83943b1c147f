"""RSS/Atom feed client for SignalFusion.

Feed bodies are downloaded through HTTPClient (so failures surface as typed
upstream errors) and parsed with feedparser. No business logic — raw entries
and field helpers only.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import feedparser

from signalfusion.clients.http_client import HTTPClient
from signalfusion.errors import MalformedPayload
from signalfusion.utils.date_utils import parse_timestamp

logger = logging.getLogger(__name__)


class RSSClient:
    """Fetch and parse RSS/Atom feeds.

    Args:
        http: Shared HTTP client used to download feed bodies.
    """

    def __init__(self, http: Optional[HTTPClient] = None) -> None:
        self.http = http or HTTPClient()

    def fetch_feed(self, feed_url: str, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """Fetch and parse one feed within an optional total ``timeout``.

        Returns:
            feedparser entry dicts (possibly empty for a quiet feed).

        Raises:
            UpstreamUnavailable / UpstreamTimeout: download failed.
            MalformedPayload: the body is not a parseable feed.
        """
        body = self.http.get_text(feed_url, timeout=timeout)
        feed = feedparser.parse(body)
        if feed.bozo and not feed.entries:
            raise MalformedPayload(
                f"Feed parse error for {feed_url}: {feed.get('bozo_exception')}", source=feed_url
            )
        if feed.bozo:
            logger.debug("Feed %s parsed with warnings: %s", feed_url, feed.get("bozo_exception"))
        return list(feed.entries)

    def get_entry_description(self, entry: Dict[str, Any]) -> str:
        """Description/summary text of an entry (may contain HTML)."""
        for field in ("summary", "description", "content"):
            value = entry.get(field)
            if value:
                if isinstance(value, list):
                    return value[0].get("value", "")
                if isinstance(value, str):
                    return value
        return ""

    def get_entry_published(self, entry: Dict[str, Any]) -> Optional[datetime]:
        """Published timestamp of an entry as UTC, or None if absent."""
        for field in ("published", "updated", "created"):
            raw = entry.get(field)
            if raw:
                parsed = parse_timestamp(str(raw))
                if parsed is not None:
                    return parsed
        return None

    def get_entry_domain(self, entry: Dict[str, Any]) -> str:
        """Host of the entry's link, without a leading 'www.'."""
        link = entry.get("link", "")
        if not link:
            return ""
        host = urlparse(link).netloc.lower()
        return host[4:] if host.startswith("www.") else host
