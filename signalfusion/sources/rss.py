"""RSS/Atom headlines as a news SourceClient.

Each entry becomes one located-less RawSignal whose text is the cleaned
headline. A feed-level ``country`` tags every headline for CII scoring.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any, Dict, List, Optional, Tuple

from config.defaults import RSS_SIGNAL_CONFIDENCE, RSS_SIGNAL_MAGNITUDE
from config.settings import SourceSettings
from signalfusion.cache.tiered_cache import TieredCache
from signalfusion.clients.rss_client import RSSClient
from signalfusion.errors import UpstreamError
from signalfusion.models.signals import Domain, RawSignal
from signalfusion.sources.base import SourceClient
from signalfusion.utils.text import clean_html, normalize_text

logger = logging.getLogger(__name__)


class RSSNewsSource(SourceClient):
    """Poll a list of RSS/Atom feeds.

    A failing feed is logged and skipped; the poll only fails when every
    feed fails.
    """

    def __init__(
        self,
        urls: List[str],
        client: Optional[RSSClient] = None,
        domain: Domain = Domain.NEWS,
        name: str = "rss",
        country: Optional[str] = None,
        settings: Optional[SourceSettings] = None,
        cache: Optional[TieredCache] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(domain, name=name, settings=settings, cache=cache, **kwargs)
        self.urls = list(urls)
        self.country = country
        self.client = client or RSSClient()

    async def fetch(self) -> List[Tuple[str, Dict[str, Any]]]:
        return await asyncio.to_thread(self._fetch_all)

    def _fetch_all(self) -> List[Tuple[str, Dict[str, Any]]]:
        deadline = self._fetch_deadline()
        entries: List[Tuple[str, Dict[str, Any]]] = []
        failures: List[UpstreamError] = []
        for url in self.urls:
            try:
                entries.extend((url, entry) for entry in self.client.fetch_feed(
                    url, timeout=self._remaining(deadline)
                ))
            except UpstreamError as exc:
                logger.warning("%s: feed %s failed: %s, continuing", self.name, url, exc)
                failures.append(exc)
        if failures and len(failures) == len(self.urls):
            raise failures[-1]
        return entries

    def normalize(self, payload: Any) -> List[RawSignal]:
        return self._normalize_records(payload, self._entry_to_signal)

    def _entry_to_signal(self, item: Tuple[str, Dict[str, Any]]) -> Optional[RawSignal]:
        feed_url, entry = item
        title = normalize_text(clean_html(entry.get("title", "")))
        if not title:
            raise ValueError("entry has no title")
        published = self.client.get_entry_published(entry)
        if published is None:
            raise ValueError(f"entry {title[:40]!r} has no publish date")

        entry_id = entry.get("id") or entry.get("link")
        if not entry_id:
            entry_id = hashlib.sha1(f"{feed_url}|{title}".encode("utf-8")).hexdigest()[:16]

        return RawSignal(
            id=str(entry_id),
            domain=self.domain,
            timestamp=published,
            location=None,
            text=title,
            magnitude=RSS_SIGNAL_MAGNITUDE,
            confidence=RSS_SIGNAL_CONFIDENCE,
            country=self.country,
            source=self.client.get_entry_domain(entry) or self.name,
        )
