"""SignalFusion sources package: one SourceClient per domain feed."""

from signalfusion.sources.base import SourceClient
from signalfusion.sources.callable_source import CallableSource
from signalfusion.sources.factory import build_source, build_sources
from signalfusion.sources.json_feed import JsonFeedSource
from signalfusion.sources.rss import RSSNewsSource
from signalfusion.sources.usgs import USGSEarthquakeSource

__all__ = [
    "SourceClient",
    "CallableSource",
    "JsonFeedSource",
    "RSSNewsSource",
    "USGSEarthquakeSource",
    "build_source",
    "build_sources",
]
