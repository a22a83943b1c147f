"""Unit tests for signalfusion.resilience.circuit_breaker.

Covers:
- closed → open after max_failures consecutive failures
- open: operation not invoked, fallback served as CACHED, DEGRADED without one
- fallback may be a coroutine function resolving to the cached entry
- cooldown → half-open single trial; success closes, failure doubles cooldown
- timeouts count as failures; typed upstream errors keep their failure kind
- success in closed resets the failure count; state is a copy
- inspecting mode or state never moves the breaker
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from signalfusion.errors import FailureKind, MalformedPayload, UpstreamUnavailable
from signalfusion.models.cache import BreakerMode, CacheEntry
from signalfusion.models.signals import Freshness, SourceStatus
from signalfusion.resilience.circuit_breaker import CircuitBreaker


def _run(coro):
    return asyncio.run(coro)


class _Upstream:
    """Async operation that fails a configurable number of times."""

    def __init__(self, failures: int = 0, exc: Exception = None, value="payload"):
        self.failures = failures
        self.exc = exc or UpstreamUnavailable("HTTP 503")
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.value


def _entry(data="cached-data"):
    return CacheEntry(
        key="k",
        data=data,
        updated_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
        source=Freshness.STALE,
    )


@pytest.fixture
def breaker(mono_clock):
    return CircuitBreaker(
        "test:op", max_failures=3, cooldown_seconds=60, max_cooldown_seconds=200, clock=mono_clock
    )


# ── Closed state ──────────────────────────────────────────────────────────────────

class TestClosed:
    def test_success_returns_live(self, breaker):
        result = _run(breaker.execute(_Upstream()))
        assert result.status is SourceStatus.LIVE
        assert result.data == "payload"
        assert result.is_live

    def test_failure_without_fallback_is_degraded(self, breaker):
        result = _run(breaker.execute(_Upstream(failures=1)))
        assert result.status is SourceStatus.DEGRADED
        assert result.data is None
        assert result.failure_kind is FailureKind.UPSTREAM_UNAVAILABLE
        assert "503" in result.cause

    def test_failure_with_fallback_is_cached(self, breaker):
        result = _run(breaker.execute(_Upstream(failures=1), fallback=_entry))
        assert result.status is SourceStatus.CACHED
        assert result.data == "cached-data"
        assert result.freshness is Freshness.STALE

    def test_awaitable_fallback_is_cached(self, breaker):
        async def load_entry():
            return _entry("from-disk")

        result = _run(breaker.execute(_Upstream(failures=1), fallback=load_entry))
        assert result.status is SourceStatus.CACHED
        assert result.data == "from-disk"

    def test_success_resets_failure_count(self, breaker):
        _run(breaker.execute(_Upstream(failures=1)))
        _run(breaker.execute(_Upstream(failures=1)))
        assert breaker.state.failure_count == 2
        _run(breaker.execute(_Upstream()))
        assert breaker.state.failure_count == 0
        assert breaker.mode is BreakerMode.CLOSED

    def test_malformed_payload_kind_preserved(self, breaker):
        result = _run(breaker.execute(_Upstream(failures=1, exc=MalformedPayload("bad schema"))))
        assert result.failure_kind is FailureKind.MALFORMED_PAYLOAD

    def test_unexpected_exception_reports_error(self, breaker):
        result = _run(breaker.execute(_Upstream(failures=1, exc=KeyError("boom"))))
        assert result.status is SourceStatus.ERROR
        assert result.failure_kind is FailureKind.UNEXPECTED
        assert breaker.state.failure_count == 1

    def test_timeout_counts_as_failure(self, breaker):
        async def slow():
            await asyncio.sleep(1.0)
            return "late"

        result = _run(breaker.execute(slow, timeout=0.01))
        assert result.status is SourceStatus.DEGRADED
        assert result.failure_kind is FailureKind.UPSTREAM_TIMEOUT
        assert breaker.state.failure_count == 1


# ── Opening ───────────────────────────────────────────────────────────────────────

class TestOpen:
    def test_opens_after_max_failures(self, breaker):
        upstream = _Upstream(failures=100)
        for _ in range(3):
            _run(breaker.execute(upstream))
        assert breaker.mode is BreakerMode.OPEN
        assert breaker.state.failure_count == 3

    def test_open_does_not_invoke_operation(self, breaker):
        upstream = _Upstream(failures=100)
        for _ in range(3):
            _run(breaker.execute(upstream))
        calls_before = upstream.calls

        result = _run(breaker.execute(upstream, fallback=_entry))

        assert upstream.calls == calls_before
        assert result.status is SourceStatus.CACHED
        assert result.failure_kind is FailureKind.DEGRADED
        assert result.data == "cached-data"

    def test_open_without_fallback_is_degraded(self, breaker):
        upstream = _Upstream(failures=100)
        for _ in range(3):
            _run(breaker.execute(upstream))
        result = _run(breaker.execute(upstream))
        assert result.status is SourceStatus.DEGRADED
        assert "circuit open" in result.cause

    def test_fallback_returning_none_is_degraded(self, breaker):
        result = _run(breaker.execute(_Upstream(failures=1), fallback=lambda: None))
        assert result.status is SourceStatus.DEGRADED


# ── Half-open ─────────────────────────────────────────────────────────────────────

class TestHalfOpen:
    def _open(self, breaker):
        upstream = _Upstream(failures=100)
        for _ in range(3):
            _run(breaker.execute(upstream))
        assert breaker.mode is BreakerMode.OPEN

    def test_cooldown_moves_to_half_open(self, breaker, mono_clock):
        self._open(breaker)
        mono_clock.advance(59)
        assert breaker.mode is BreakerMode.OPEN
        mono_clock.advance(1)
        assert breaker.mode is BreakerMode.HALF_OPEN

    def test_trial_success_closes_and_resets_cooldown(self, breaker, mono_clock):
        self._open(breaker)
        mono_clock.advance(60)
        result = _run(breaker.execute(_Upstream()))
        assert result.status is SourceStatus.LIVE
        state = breaker.state
        assert state.mode is BreakerMode.CLOSED
        assert state.failure_count == 0
        assert state.cooldown_seconds == 60

    def test_trial_failure_reopens_with_doubled_cooldown(self, breaker, mono_clock):
        self._open(breaker)
        mono_clock.advance(60)
        _run(breaker.execute(_Upstream(failures=1)))
        assert breaker.mode is BreakerMode.OPEN
        assert breaker.state.cooldown_seconds == 120

        mono_clock.advance(120)
        _run(breaker.execute(_Upstream(failures=1)))
        # capped at max_cooldown_seconds
        assert breaker.state.cooldown_seconds == 200

    def test_concurrent_callers_rejected_during_trial(self, breaker, mono_clock):
        self._open(breaker)
        mono_clock.advance(60)

        async def scenario():
            gate = asyncio.Event()
            calls = {"n": 0}

            async def trial():
                calls["n"] += 1
                await gate.wait()
                return "ok"

            first = asyncio.create_task(breaker.execute(trial))
            await asyncio.sleep(0)
            second = await breaker.execute(trial, fallback=_entry)
            gate.set()
            return await first, second, calls["n"]

        first, second, calls = _run(scenario())
        assert first.status is SourceStatus.LIVE
        assert second.status is SourceStatus.CACHED
        assert calls == 1


# ── Inspection ────────────────────────────────────────────────────────────────────

class TestInspection:
    def test_state_is_a_copy(self, breaker):
        state = breaker.state
        state.failure_count = 99
        assert breaker.state.failure_count == 0

    def test_reading_mode_does_not_transition(self, breaker, mono_clock, caplog):
        for _ in range(3):
            _run(breaker.execute(_Upstream(failures=100)))
        mono_clock.advance(60)

        with caplog.at_level(logging.INFO, logger="signalfusion.resilience.circuit_breaker"):
            assert breaker.mode is BreakerMode.HALF_OPEN
            assert breaker.state.mode is BreakerMode.HALF_OPEN

        assert breaker._state.mode is BreakerMode.OPEN
        assert "half-open" not in caplog.text

    def test_reset_closes(self, breaker):
        for _ in range(3):
            _run(breaker.execute(_Upstream(failures=100)))
        breaker.reset()
        assert breaker.mode is BreakerMode.CLOSED
        assert breaker.state.failure_count == 0

    def test_breakers_are_independent(self, mono_clock):
        a = CircuitBreaker("a", max_failures=1, clock=mono_clock)
        b = CircuitBreaker("b", max_failures=1, clock=mono_clock)
        _run(a.execute(_Upstream(failures=1)))
        assert a.mode is BreakerMode.OPEN
        assert b.mode is BreakerMode.CLOSED

    def test_invalid_max_failures_rejected(self):
        with pytest.raises(ValueError):
            CircuitBreaker("x", max_failures=0)
