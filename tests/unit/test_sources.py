"""Unit tests for signalfusion.sources.

Covers:
- USGSEarthquakeSource: fixture normalization, filtering, skipped records
- RSSNewsSource: headlines, undated entries skipped, per-feed failure isolation
- JsonFeedSource: dotted-path field mapping, bad records_path
- SourceClient.poll: LIVE write-through, CACHED fallback, DEGRADED, ERROR
- CallableSource and sub-score normalization
- build_sources from FeedSettings
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest
import requests

from config.settings import FeedSettings, FusionConfig, SourceSettings
from signalfusion.cache.tiered_cache import TieredCache
from signalfusion.clients.http_client import HTTPClient
from signalfusion.clients.rss_client import RSSClient
from signalfusion.errors import FailureKind, MalformedPayload, UpstreamUnavailable
from signalfusion.models.signals import Domain, Freshness, SourceStatus
from signalfusion.sources import (
    CallableSource,
    JsonFeedSource,
    RSSNewsSource,
    USGSEarthquakeSource,
    build_sources,
)
from signalfusion.sources.json_feed import dig


def _run(coro):
    return asyncio.run(coro)


# ── USGS ──────────────────────────────────────────────────────────────────────────

class TestUSGSEarthquakeSource:
    def test_normalize_fixture(self, usgs_raw, t0):
        source = USGSEarthquakeSource(http=MagicMock(spec=HTTPClient))
        signals = source.normalize(usgs_raw)

        assert [s.id for s in signals] == ["us7000lxyz", "ak0241abcd"]
        quake = signals[0]
        assert quake.domain is Domain.SEISMIC
        assert quake.location == (40.51, 142.48)
        assert quake.magnitude == 5.4
        assert quake.confidence == 1.0
        assert quake.timestamp.isoformat() == "2024-01-15T11:00:00+00:00"
        assert signals[1].confidence == 0.8

    def test_broken_feature_skipped(self, usgs_raw):
        source = USGSEarthquakeSource(http=MagicMock(spec=HTTPClient))
        source.normalize(usgs_raw)
        assert source._last_skipped == 1

    def test_not_a_feature_collection(self):
        source = USGSEarthquakeSource(http=MagicMock(spec=HTTPClient))
        with pytest.raises(MalformedPayload):
            source.normalize({"type": "Feature"})

    def test_poll_live(self, usgs_raw, clock):
        http = MagicMock(spec=HTTPClient)
        http.get_json.return_value = usgs_raw
        source = USGSEarthquakeSource(http=http, country="JP", clock=clock)

        result = _run(source.poll())

        assert result.status is SourceStatus.LIVE
        assert result.freshness is Freshness.LIVE
        assert len(result.signals) == 2
        assert result.skipped_records == 1
        assert {s.country for s in result.signals} == {"JP"}

    def test_fetch_passes_source_timeout(self, usgs_raw):
        http = MagicMock(spec=HTTPClient)
        http.get_json.return_value = usgs_raw
        source = USGSEarthquakeSource(http=http, settings=SourceSettings(timeout_seconds=3.0))

        _run(source.poll())

        assert http.get_json.call_args.kwargs["timeout"] == 3.0

    def test_hanging_upstream_sends_one_request_per_poll(self, mono_clock):
        http = HTTPClient(
            max_retries=2, backoff_base=1.0, request_timeout=15.0, stagger_seconds=0.0,
            clock=mono_clock,
        )

        def hang(*args, **kwargs):
            mono_clock.advance(kwargs["timeout"])
            raise requests.exceptions.Timeout("read timed out")

        source = USGSEarthquakeSource(http=http, settings=SourceSettings(timeout_seconds=8.0))
        with patch.object(requests.Session, "get", side_effect=hang) as mock_get:
            result = _run(source.poll())

        assert result.status is SourceStatus.DEGRADED
        assert result.failure_kind is FailureKind.UPSTREAM_TIMEOUT
        assert mock_get.call_count == 1
        assert source.breaker.state.failure_count == 1


# ── RSS ───────────────────────────────────────────────────────────────────────────

@pytest.fixture
def rss_http(rss_raw):
    http = MagicMock(spec=HTTPClient)
    http.get_text.return_value = rss_raw
    return http


class TestRSSNewsSource:
    def test_poll_fixture(self, rss_http):
        source = RSSNewsSource(["https://news.example.com/rss"], client=RSSClient(rss_http), country="us")

        result = _run(source.poll())

        assert result.status is SourceStatus.LIVE
        assert [s.id for s in result.signals] == ["article-1", "article-2"]
        assert result.signals[1].text == "Central bank raises & holds rates"
        assert result.signals[0].source == "news.example.com"
        assert result.signals[0].country == "US"
        assert result.signals[0].location is None
        assert result.skipped_records == 1

    def test_one_failing_feed_is_skipped(self, rss_raw):
        http = MagicMock(spec=HTTPClient)
        http.get_text.side_effect = [UpstreamUnavailable("HTTP 503"), rss_raw]
        source = RSSNewsSource(["https://a.example/rss", "https://b.example/rss"], client=RSSClient(http))

        result = _run(source.poll())

        assert result.status is SourceStatus.LIVE
        assert len(result.signals) == 2

    def test_all_feeds_failing_degrades(self):
        http = MagicMock(spec=HTTPClient)
        http.get_text.side_effect = UpstreamUnavailable("HTTP 503")
        source = RSSNewsSource(["https://a.example/rss"], client=RSSClient(http))

        result = _run(source.poll())

        assert result.status is SourceStatus.DEGRADED
        assert result.failure_kind is FailureKind.UPSTREAM_UNAVAILABLE
        assert result.signals == []


# ── JSON feed ─────────────────────────────────────────────────────────────────────

class TestJsonFeedSource:
    def test_dig(self):
        data = {"a": {"b": [{"c": 1}, {"c": 2}]}}
        assert dig(data, "a.b.1.c") == 2
        assert dig(data, "a.b.-1.c") == 2
        assert dig(data, "a.x", "default") == "default"
        assert dig(data, "a.b.9.c") is None
        assert dig(data, "") is data

    def test_field_mapping(self):
        feed = FeedSettings(
            domain="aviation",
            kind="json",
            url="https://example.org/flights.json",
            records_path="data.items",
            fields={"id": "icao24", "lat": "pos.lat", "lon": "pos.lon", "text": "callsign"},
            country="de",
        )
        source = JsonFeedSource(feed, http=MagicMock(spec=HTTPClient))
        page = {"data": {"items": [
            {"icao24": "3c6444", "timestamp": "2024-01-15T11:55:00Z",
             "pos": {"lat": 50.03, "lon": 8.57}, "callsign": "DLH400"},
            {"icao24": "", "timestamp": "2024-01-15T11:55:00Z"},
        ]}}

        signals = source.normalize([page])

        assert len(signals) == 1
        signal = signals[0]
        assert signal.id == "3c6444"
        assert signal.location == (50.03, 8.57)
        assert signal.text == "DLH400"
        assert signal.magnitude == 1.0
        assert signal.country == "DE"
        assert source._last_skipped == 1

    def test_records_path_not_a_list(self):
        feed = FeedSettings(domain="cyber", kind="json", url="https://example.org/x", records_path="data")
        source = JsonFeedSource(feed, http=MagicMock(spec=HTTPClient))
        with pytest.raises(MalformedPayload):
            source.normalize([{"data": {"not": "a list"}}])

    def test_fetch_pages_through_urls(self):
        http = MagicMock(spec=HTTPClient)
        http.get_json.side_effect = [[{"id": 1, "timestamp": 1705316400}], [{"id": 2, "timestamp": 1705316400}]]
        feed = FeedSettings(domain="cyber", kind="json", urls=["https://a.example", "https://b.example"])
        source = JsonFeedSource(feed, http=http)

        result = _run(source.poll())

        assert [s.id for s in result.signals] == ["1", "2"]


# ── Poll / fallback ───────────────────────────────────────────────────────────────

class _Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)

    async def __call__(self):
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestPoll:
    def test_cache_fallback_after_failure(self, make_signal, clock):
        signal = make_signal("c1", "cyber", country="UA")
        cache = TieredCache(clock=clock)
        source = CallableSource(
            "cyber", _Flaky([signal], UpstreamUnavailable("HTTP 503")), cache=cache, clock=clock
        )

        live = _run(source.poll())
        clock.advance(30)
        fallback = _run(source.poll())

        assert live.status is SourceStatus.LIVE
        assert fallback.status is SourceStatus.CACHED
        assert fallback.freshness is Freshness.CACHED
        assert fallback.signals == [signal]
        assert fallback.failure_kind is FailureKind.UPSTREAM_UNAVAILABLE

    def test_stale_fallback(self, make_signal, clock):
        settings = SourceSettings(ttl_seconds=60)
        source = CallableSource(
            "cyber", _Flaky([make_signal("c1", "cyber")], UpstreamUnavailable("down")),
            settings=settings, clock=clock,
        )
        _run(source.poll())
        clock.advance(120)
        assert _run(source.poll()).freshness is Freshness.STALE

    def test_no_cache_is_degraded(self):
        source = CallableSource("cyber", _Flaky(UpstreamUnavailable("down")))
        result = _run(source.poll())
        assert result.status is SourceStatus.DEGRADED
        assert result.cause

    def test_empty_live_result_is_not_degraded(self):
        source = CallableSource("cyber", _Flaky([]))
        result = _run(source.poll())
        assert result.status is SourceStatus.LIVE
        assert result.signals == []

    def test_bug_in_normalizer_is_error(self):
        def broken(payload):
            raise RuntimeError("bug")

        source = CallableSource("cyber", _Flaky({"x": 1}), normalizer=broken)
        result = _run(source.poll())
        assert result.status is SourceStatus.ERROR
        assert result.failure_kind is FailureKind.UNEXPECTED

    def test_wrong_domain_records_rejected(self, make_signal):
        source = CallableSource("cyber", _Flaky([make_signal("n1", "news")]))
        result = _run(source.poll())
        assert result.failure_kind is FailureKind.MALFORMED_PAYLOAD

    def test_accepts_signal_dicts(self, make_signal):
        payload = [make_signal("c1", "cyber").to_dict()]
        source = CallableSource("cyber", _Flaky(payload))
        assert _run(source.poll()).signals[0].id == "c1"


class TestSubScores:
    def test_saturating_log_scale(self, make_signal):
        source = CallableSource("cyber", _Flaky([]), settings=SourceSettings(score_saturation=9.0))
        signals = [make_signal(f"c{i}", "cyber", country="UA", magnitude=3.0) for i in range(3)]
        signals.append(make_signal("x", "cyber", country="TW", magnitude=100.0))
        signals.append(make_signal("y", "cyber"))

        scores = source.sub_scores(signals)

        # log1p(9) / log1p(9)
        assert scores["UA"] == pytest.approx(1.0)
        assert scores["TW"] == 1.0
        assert set(scores) == {"UA", "TW"}

    def test_partial_score(self, make_signal):
        source = CallableSource("cyber", _Flaky([]), settings=SourceSettings(score_saturation=99.0))
        scores = source.sub_scores([make_signal("c1", "cyber", country="UA", magnitude=9.0)])
        assert scores["UA"] == pytest.approx(0.5)


class TestFactory:
    def test_build_sources(self):
        config = FusionConfig(
            cache_dir="",
            feeds=[
                FeedSettings(domain="seismic", kind="usgs_geojson", url="https://example.org/q.geojson"),
                FeedSettings(domain="news", kind="rss", urls=["https://example.org/rss"], name="wire"),
                FeedSettings(domain="aviation", kind="json", url="https://example.org/a.json"),
            ],
        )
        sources = build_sources(config, http=MagicMock(spec=HTTPClient))
        assert [type(s).__name__ for s in sources] == [
            "USGSEarthquakeSource", "RSSNewsSource", "JsonFeedSource",
        ]
        assert sources[1].cache_key == "news:wire"
        assert sources[0].settings.ttl_seconds == config.source_settings("seismic").ttl_seconds
