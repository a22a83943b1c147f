"""Shared pytest fixtures for SignalFusion tests.

Conventions:
- Fixture data lives in tests/fixtures/ as static files
- HTTP is mocked at the requests.Session level; no real network calls
- Time is injected through fake clocks so breaker cooldowns, cache TTLs and
  cycle timestamps are deterministic
- Async code is driven with asyncio.run() from plain test functions
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict
from unittest.mock import MagicMock, patch

import pytest

_FIXTURES_DIR = Path(__file__).parent / "fixtures"

T0 = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# ── Clocks ───────────────────────────────────────────────────────────────────────

class FakeClock:
    """Wall clock returning a settable tz-aware UTC datetime."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0.0, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


class FakeMonotonic:
    """Monotonic clock (float seconds) for circuit breaker cooldowns."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> float:
        self.value += seconds
        return self.value


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mono_clock() -> FakeMonotonic:
    return FakeMonotonic()


# ── Raw fixture data loaders ─────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def usgs_raw() -> Dict[str, Any]:
    """USGS GeoJSON summary: 2 earthquakes, 1 quarry blast, 1 broken feature."""
    with open(_FIXTURES_DIR / "usgs_sample.geojson", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture(scope="session")
def rss_raw() -> str:
    """RSS 2.0 feed: 2 dated items and 1 undated item."""
    return (_FIXTURES_DIR / "sample_feed.xml").read_text(encoding="utf-8")


# ── Model factories ──────────────────────────────────────────────────────────────

@pytest.fixture
def make_signal():
    """Factory for RawSignal with sensible defaults.

    Usage:
        sig = make_signal("a1", "aviation", minutes=5, location=(35.0, 139.0))
    """
    from signalfusion.models.signals import RawSignal

    def _make(
        signal_id: str,
        domain: str = "news",
        minutes: float = 0.0,
        location=None,
        text=None,
        magnitude: float = 1.0,
        confidence: float = 1.0,
        country=None,
        source: str = "test",
    ) -> RawSignal:
        return RawSignal(
            id=signal_id,
            domain=domain,
            timestamp=T0 + timedelta(minutes=minutes),
            location=location,
            text=text,
            magnitude=magnitude,
            confidence=confidence,
            country=country,
            source=source,
        )

    return _make


# ── Config fixture ───────────────────────────────────────────────────────────────

@pytest.fixture
def fusion_config(tmp_path):
    """FusionConfig isolated to a temp directory, no feeds, no export."""
    from config.settings import FusionConfig

    return FusionConfig(
        cache_dir="",
        output_root=str(tmp_path / "outputs"),
        export_results=False,
        log_level="WARNING",
    )


# ── HTTP mock helper ─────────────────────────────────────────────────────────────

@pytest.fixture
def http_mock():
    """Patch requests.Session.get with a configurable response.

    Usage:
        def test_something(http_mock):
            with http_mock(status_code=200, text='{"features": []}') as mock_get:
                ...
    """
    import requests

    class _HttpMockContext:
        def __call__(self, status_code: int = 200, text: str = "{}"):
            mock_resp = MagicMock()
            mock_resp.status_code = status_code
            mock_resp.text = text
            return patch.object(requests.Session, "get", return_value=mock_resp)

    return _HttpMockContext()


@pytest.fixture(autouse=True)
def _no_sleep():
    """Skip real backoff/stagger sleeps inside the HTTP client."""
    with patch("signalfusion.clients.http_client.time.sleep"):
        yield
