"""Build SourceClients from FusionConfig.feeds."""

from __future__ import annotations

import logging
from typing import List, Optional

from config.settings import FeedSettings, FusionConfig
from signalfusion.cache.tiered_cache import TieredCache
from signalfusion.clients.http_client import HTTPClient
from signalfusion.clients.rss_client import RSSClient
from signalfusion.sources.base import SourceClient
from signalfusion.sources.json_feed import JsonFeedSource
from signalfusion.sources.rss import RSSNewsSource
from signalfusion.sources.usgs import USGSEarthquakeSource

logger = logging.getLogger(__name__)


def build_source(
    feed: FeedSettings,
    config: FusionConfig,
    http: HTTPClient,
    cache: Optional[TieredCache] = None,
) -> SourceClient:
    """Instantiate the SourceClient for one configured feed."""
    settings = config.source_settings(feed.domain)
    if feed.kind == "json":
        return JsonFeedSource(feed, http=http, settings=settings, cache=cache)
    if feed.kind == "usgs_geojson":
        return USGSEarthquakeSource(
            url=feed.url or feed.urls[0],
            http=http,
            name=feed.name,
            country=feed.country,
            settings=settings,
            cache=cache,
        )
    if feed.kind == "rss":
        return RSSNewsSource(
            urls=[feed.url] if feed.url else feed.urls,
            client=RSSClient(http),
            domain=feed.domain,
            name=feed.name,
            country=feed.country,
            settings=settings,
            cache=cache,
        )
    # FeedSettings validates kind, so this only fires if FEED_KINDS grows
    raise ValueError(f"No source implementation for feed kind {feed.kind!r}")


def build_sources(
    config: FusionConfig,
    cache: Optional[TieredCache] = None,
    http: Optional[HTTPClient] = None,
) -> List[SourceClient]:
    """One SourceClient per entry in ``config.feeds``, sharing an HTTP client."""
    http = http or HTTPClient(
        max_retries=config.http_max_retries,
        backoff_base=config.http_backoff_base,
        stagger_seconds=config.http_stagger_seconds,
    )
    sources = [build_source(feed, config, http, cache) for feed in config.feeds]
    logger.info("Built %d sources from configuration", len(sources))
    return sources
