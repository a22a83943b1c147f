"""Per-source circuit breaker for SignalFusion.

Wraps one upstream operation so that repeated failures stop hammering the
upstream and callers get the last cached snapshot instead. The breaker never
raises to its caller: every outcome is a FetchResult with an explicit status.

State machine:
    closed  --max_failures consecutive failures-->  open
    open    --cooldown elapsed-->                   half-open (one trial call)
    half-open --success--> closed (cooldown reset)
    half-open --failure--> open (cooldown doubled, capped)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional, Union

from signalfusion.errors import FailureKind, UpstreamError
from signalfusion.models.cache import BreakerMode, BreakerState, CacheEntry
from signalfusion.models.signals import FetchResult, SourceStatus
from signalfusion.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]
# May return the entry directly or an awaitable resolving to it
Fallback = Callable[[], Union[Optional[CacheEntry], Awaitable[Optional[CacheEntry]]]]


class CircuitBreaker:
    """Guard one (domain, operation) pair.

    Args:
        name: Label used in logs (e.g. "seismic:usgs").
        max_failures: Consecutive failures that open the breaker.
        cooldown_seconds: Base open-state duration before a trial call.
        max_cooldown_seconds: Cap for the doubled cooldown.
        timeout_seconds: Default per-call timeout; None disables it.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        max_failures: int = 5,
        cooldown_seconds: float = 60.0,
        max_cooldown_seconds: float = 900.0,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_failures < 1:
            raise ValueError("max_failures must be >= 1")
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be > 0")
        self.name = name
        self.max_failures = int(max_failures)
        self.base_cooldown = float(cooldown_seconds)
        self.max_cooldown = max(float(max_cooldown_seconds), self.base_cooldown)
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._state = BreakerState(cooldown_seconds=self.base_cooldown)
        self._trial_in_flight = False

    # ── Inspection ─────────────────────────────────────────────────────────────

    @property
    def state(self) -> BreakerState:
        """Snapshot of the breaker state (a copy; mutating it has no effect)."""
        return replace(self._state, mode=self._effective_mode())

    @property
    def mode(self) -> BreakerMode:
        return self._effective_mode()

    def reset(self) -> None:
        """Force the breaker closed with the base cooldown."""
        self._state = BreakerState(cooldown_seconds=self.base_cooldown)
        self._trial_in_flight = False

    # ── Execution ──────────────────────────────────────────────────────────────

    async def execute(
        self,
        operation: Operation,
        fallback: Optional[Fallback] = None,
        timeout: Optional[float] = None,
    ) -> FetchResult:
        """Run ``operation`` under the breaker.

        Args:
            operation: Zero-argument callable returning an awaitable.
            fallback: Zero-argument callable returning (or resolving to) the
                cached entry to serve on failure, or None.
            timeout: Per-call timeout overriding the instance default.

        Returns:
            FetchResult — LIVE on success, CACHED when the fallback yielded an
            entry, DEGRADED (or ERROR for unexpected exceptions) otherwise.
        """
        if not self._admit():
            cause = f"circuit open for {self.name}"
            if self._state.mode is BreakerMode.HALF_OPEN:
                cause = f"trial call in progress for {self.name}"
            logger.debug("%s: rejected (%s)", self.name, self._state.mode.value)
            return await self._fallback_result(fallback, cause, FailureKind.DEGRADED)

        trial = self._state.mode is BreakerMode.HALF_OPEN
        if trial:
            self._trial_in_flight = True
        timeout = self.timeout_seconds if timeout is None else timeout

        try:
            if timeout is not None:
                data = await asyncio.wait_for(operation(), timeout=timeout)
            else:
                data = await operation()
        except asyncio.TimeoutError:
            self._record_failure(f"timed out after {timeout}s")
            return await self._fallback_result(
                fallback, f"{self.name} timed out after {timeout}s", FailureKind.UPSTREAM_TIMEOUT
            )
        except UpstreamError as exc:
            self._record_failure(str(exc))
            return await self._fallback_result(fallback, str(exc), exc.kind)
        except Exception as exc:
            logger.exception("%s: unexpected error in guarded operation", self.name)
            self._record_failure(f"{type(exc).__name__}: {exc}")
            return await self._fallback_result(
                fallback, f"{type(exc).__name__}: {exc}", FailureKind.UNEXPECTED
            )
        finally:
            if trial:
                self._trial_in_flight = False

        self._record_success()
        return FetchResult(data=data, status=SourceStatus.LIVE, updated_at=utcnow())

    # ── Internal state transitions ─────────────────────────────────────────────

    def _effective_mode(self) -> BreakerMode:
        state = self._state
        if state.mode is BreakerMode.OPEN and state.opened_at is not None:
            if self._clock() - state.opened_at >= state.cooldown_seconds:
                return BreakerMode.HALF_OPEN
        return state.mode

    def _refresh_mode(self) -> None:
        mode = self._effective_mode()
        if mode is not self._state.mode:
            self._state.mode = mode
            logger.info("%s: cooldown elapsed, half-open", self.name)

    def _admit(self) -> bool:
        self._refresh_mode()
        mode = self._state.mode
        if mode is BreakerMode.CLOSED:
            return True
        if mode is BreakerMode.HALF_OPEN:
            return not self._trial_in_flight
        return False

    def _record_success(self) -> None:
        state = self._state
        if state.mode is not BreakerMode.CLOSED:
            logger.info("%s: trial call succeeded, closing breaker", self.name)
        state.mode = BreakerMode.CLOSED
        state.failure_count = 0
        state.opened_at = None
        state.cooldown_seconds = self.base_cooldown
        state.last_failure = None

    def _record_failure(self, cause: str) -> None:
        state = self._state
        state.failure_count += 1
        state.last_failure = cause
        if state.mode is BreakerMode.HALF_OPEN:
            state.cooldown_seconds = min(state.cooldown_seconds * 2, self.max_cooldown)
            state.mode = BreakerMode.OPEN
            state.opened_at = self._clock()
            logger.warning(
                "%s: trial call failed (%s), reopening for %.0fs",
                self.name, cause, state.cooldown_seconds,
            )
        elif state.mode is BreakerMode.CLOSED and state.failure_count >= self.max_failures:
            state.mode = BreakerMode.OPEN
            state.opened_at = self._clock()
            logger.warning(
                "%s: %d consecutive failures (last: %s), opening for %.0fs",
                self.name, state.failure_count, cause, state.cooldown_seconds,
            )
        else:
            logger.warning(
                "%s: failure %d/%d: %s",
                self.name, state.failure_count, self.max_failures, cause,
            )

    async def _fallback_result(
        self, fallback: Optional[Fallback], cause: str, kind: FailureKind
    ) -> FetchResult:
        entry: Optional[CacheEntry] = None
        if fallback is not None:
            try:
                entry = fallback()
                if inspect.isawaitable(entry):
                    entry = await entry
            except Exception as exc:
                logger.error("%s: fallback lookup failed: %s", self.name, exc)
        if entry is not None:
            return FetchResult(
                data=entry.data,
                status=SourceStatus.CACHED,
                cause=cause,
                failure_kind=kind,
                freshness=entry.source,
                updated_at=entry.updated_at,
            )
        status = SourceStatus.ERROR if kind is FailureKind.UNEXPECTED else SourceStatus.DEGRADED
        return FetchResult(data=None, status=status, cause=cause, failure_kind=kind)
