"""USGS real-time earthquake feed (GeoJSON) as a seismic SourceClient."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from config.defaults import USGS_AUTOMATIC_CONFIDENCE, USGS_FEED_URL
from config.settings import SourceSettings
from signalfusion.cache.tiered_cache import TieredCache
from signalfusion.clients.http_client import HTTPClient
from signalfusion.errors import MalformedPayload
from signalfusion.models.signals import Domain, RawSignal
from signalfusion.sources.base import SourceClient
from signalfusion.utils.date_utils import parse_timestamp

logger = logging.getLogger(__name__)


class USGSEarthquakeSource(SourceClient):
    """Earthquakes from the USGS GeoJSON summary feeds.

    Magnitude is the reported Richter/moment magnitude; events the USGS has
    not reviewed yet get a reduced confidence.
    """

    def __init__(
        self,
        url: str = USGS_FEED_URL,
        http: Optional[HTTPClient] = None,
        name: str = "usgs",
        country: Optional[str] = None,
        settings: Optional[SourceSettings] = None,
        cache: Optional[TieredCache] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(Domain.SEISMIC, name=name, settings=settings, cache=cache, **kwargs)
        self.url = url
        self.country = country
        self.http = http or HTTPClient(request_timeout=self.settings.timeout_seconds)

    async def fetch(self) -> Any:
        return await asyncio.to_thread(
            self.http.get_json, self.url, timeout=self.settings.timeout_seconds
        )

    def normalize(self, payload: Any) -> List[RawSignal]:
        if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
            raise MalformedPayload(f"{self.name}: not a GeoJSON FeatureCollection", source=self.name)
        features = payload.get("features")
        if not isinstance(features, list):
            raise MalformedPayload(f"{self.name}: 'features' is not a list", source=self.name)
        return self._normalize_records(features, self._feature_to_signal)

    def _feature_to_signal(self, feature: Dict[str, Any]) -> Optional[RawSignal]:
        props = feature["properties"]
        if props.get("type", "earthquake") != "earthquake":
            return None

        coords = feature["geometry"]["coordinates"]
        lon, lat = float(coords[0]), float(coords[1])
        timestamp = parse_timestamp(props["time"])
        if timestamp is None:
            raise ValueError(f"feature {feature.get('id')}: unparseable time")

        mag = props.get("mag")
        reviewed = props.get("status") == "reviewed"
        return RawSignal(
            id=str(feature["id"]),
            domain=Domain.SEISMIC,
            timestamp=timestamp,
            location=(lat, lon),
            text=props.get("title") or props.get("place"),
            magnitude=float(mag) if mag is not None else 0.0,
            confidence=1.0 if reviewed else USGS_AUTOMATIC_CONFIDENCE,
            country=self.country,
            source=self.name,
        )
