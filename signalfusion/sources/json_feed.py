"""Config-driven JSON feed source.

Maps an arbitrary JSON payload onto RawSignals using a field mapping from
FeedSettings, e.g.::

    feeds:
      - domain: aviation
        kind: json
        url: https://example.org/flights.json
        records_path: data.items
        fields: {id: icao24, lat: position.lat, lon: position.lon, text: callsign}
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from config.settings import FeedSettings, SourceSettings
from signalfusion.cache.tiered_cache import TieredCache
from signalfusion.clients.http_client import HTTPClient
from signalfusion.errors import MalformedPayload
from signalfusion.models.signals import RawSignal
from signalfusion.sources.base import SourceClient
from signalfusion.utils.date_utils import parse_timestamp

logger = logging.getLogger(__name__)

# RawSignal attribute → default payload key
DEFAULT_FIELDS: Dict[str, str] = {
    "id": "id",
    "timestamp": "timestamp",
    "lat": "lat",
    "lon": "lon",
    "text": "text",
    "magnitude": "magnitude",
    "confidence": "confidence",
    "country": "country",
}

_MISSING = object()


def dig(data: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted path (``a.b.0.c``) through dicts and lists."""
    if not path:
        return data
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            return default
    return current


class JsonFeedSource(SourceClient):
    """Poll one or more JSON endpoints and map records with a field table."""

    def __init__(
        self,
        feed: FeedSettings,
        http: Optional[HTTPClient] = None,
        settings: Optional[SourceSettings] = None,
        cache: Optional[TieredCache] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(feed.domain, name=feed.name, settings=settings, cache=cache, **kwargs)
        self.feed = feed
        self.http = http or HTTPClient(request_timeout=self.settings.timeout_seconds)
        self.fields = dict(DEFAULT_FIELDS)
        self.fields.update(feed.fields)

    @property
    def urls(self) -> List[str]:
        return [self.feed.url] if self.feed.url else list(self.feed.urls)

    async def fetch(self) -> Any:
        deadline = self._fetch_deadline()
        payloads = []
        for url in self.urls:
            payloads.append(
                await asyncio.to_thread(
                    self.http.get_json,
                    url,
                    self.feed.params or None,
                    self.feed.headers or None,
                    timeout=self._remaining(deadline),
                )
            )
        return payloads

    def normalize(self, payload: Any) -> List[RawSignal]:
        """``payload`` is the list of response bodies, one per configured URL."""
        if not isinstance(payload, list):
            raise MalformedPayload(f"{self.name}: expected one body per URL", source=self.name)
        records: List[Any] = []
        for page in payload:
            found = dig(page, self.feed.records_path)
            if not isinstance(found, list):
                raise MalformedPayload(
                    f"{self.name}: expected a list at {self.feed.records_path or '<root>'!r}, "
                    f"got {type(found).__name__}",
                    source=self.name,
                )
            records.extend(found)
        return self._normalize_records(records, self.normalize_record)

    def normalize_record(self, record: Dict[str, Any]) -> RawSignal:
        if not isinstance(record, dict):
            raise TypeError(f"record is {type(record).__name__}, not an object")
        f = self.fields

        raw_id = dig(record, f["id"])
        if raw_id in (None, ""):
            raise ValueError("record has no id")
        timestamp = parse_timestamp(dig(record, f["timestamp"]))
        if timestamp is None:
            raise ValueError(f"record {raw_id}: unparseable timestamp")

        lat, lon = dig(record, f["lat"]), dig(record, f["lon"])
        location = (float(lat), float(lon)) if lat is not None and lon is not None else None

        text = dig(record, f["text"])
        magnitude = dig(record, f["magnitude"], 1.0)
        confidence = dig(record, f["confidence"], 1.0)
        country = dig(record, f["country"]) or self.feed.country

        return RawSignal(
            id=str(raw_id),
            domain=self.domain,
            timestamp=timestamp,
            location=location,
            text=str(text) if text is not None else None,
            magnitude=float(magnitude if magnitude is not None else 1.0),
            confidence=float(confidence if confidence is not None else 1.0),
            country=str(country) if country else None,
            source=self.name,
        )
