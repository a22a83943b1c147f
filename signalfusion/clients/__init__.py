"""Upstream HTTP clients for SignalFusion sources."""

from signalfusion.clients.http_client import HTTPClient
from signalfusion.clients.rss_client import RSSClient

__all__ = ["HTTPClient", "RSSClient"]
