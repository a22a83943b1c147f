"""SignalFusion cycle orchestrator.

Drives the whole fusion loop on a single asyncio event loop:

  * one polling task per SourceClient, each on its own interval;
  * a cycle task that, every ``cycle_interval_seconds``, takes one snapshot of
    the latest per-domain results and runs
        snapshot → Deduplicator → ConvergenceDetector
        snapshot → per-source sub-scores → InstabilityScorer
    then publishes a FusionCycleResult to every sink;
  * a cache sweep task.

Source failures never reach this module as exceptions: every poll returns a
SourceResult with an explicit status. Stage and sink failures are logged and
recorded on the cycle result; they never stop the loop.

Usage:
    from config.settings import load_config
    from signalfusion.orchestrator import FusionOrchestrator

    orchestrator = FusionOrchestrator.from_config(load_config("fusion.yaml"))
    result = asyncio.run(orchestrator.run_once())
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import signal
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from config.settings import FusionConfig
from signalfusion.analysis.baseline import BaselineStore
from signalfusion.analysis.convergence import ConvergenceDetector
from signalfusion.analysis.deduplicator import Deduplicator
from signalfusion.analysis.instability import InstabilityScorer
from signalfusion.cache.stores import JsonDirectoryStore
from signalfusion.cache.tiered_cache import TieredCache
from signalfusion.errors import ConfigurationError, FailureKind
from signalfusion.io.exporters import JsonCycleExporter
from signalfusion.models.cycle import DomainStatus, FusionCycleResult
from signalfusion.models.signals import Domain, RawSignal, SourceResult, SourceStatus
from signalfusion.sources.base import SourceClient
from signalfusion.sources.factory import build_sources
from signalfusion.utils.date_utils import utcnow
from signalfusion.utils.logging_utils import get_cycle_logger

logger = logging.getLogger(__name__)

NO_COMPLETED_FETCH = "no completed fetch"

Sink = Callable[[FusionCycleResult], Any]


class FusionOrchestrator:
    """Schedule sources and run fusion cycles.

    Args:
        sources: One SourceClient per domain.
        config: Runtime configuration (defaults if omitted).
        cache: Shared cache swept by the sweep task (sources may also own
            private caches; those are swept too).
        deduplicator / detector / scorer: Stage overrides; built from
            ``config`` when omitted.
        sinks: Callables receiving each FusionCycleResult (sync or async).
        clock: Returns the current UTC datetime (injectable for tests).

    Raises:
        ConfigurationError: duplicate domains, a non-SourceClient source, or a
            required domain without a source.
    """

    def __init__(
        self,
        sources: Sequence[SourceClient],
        config: Optional[FusionConfig] = None,
        cache: Optional[TieredCache] = None,
        deduplicator: Optional[Deduplicator] = None,
        detector: Optional[ConvergenceDetector] = None,
        scorer: Optional[InstabilityScorer] = None,
        sinks: Iterable[Sink] = (),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or FusionConfig()
        self._sources: Dict[Domain, SourceClient] = {}
        for source in sources:
            if not isinstance(source, SourceClient):
                raise ConfigurationError(f"{source!r} is not a SourceClient")
            if source.domain in self._sources:
                raise ConfigurationError(
                    f"Domain {source.domain.value!r} has two sources: "
                    f"{self._sources[source.domain].name} and {source.name}"
                )
            self._sources[source.domain] = source

        missing = [d.value for d in self.config.required_domains if d not in self._sources]
        if missing:
            raise ConfigurationError(f"No source registered for required domain(s): {', '.join(missing)}")

        self.cache = cache
        self.deduplicator = deduplicator or Deduplicator.from_settings(self.config.dedup)
        self.detector = detector or ConvergenceDetector.from_settings(self.config.convergence)
        self.scorer = scorer or InstabilityScorer(
            weights=self.config.instability,
            baseline=BaselineStore.from_settings(self.config.baseline),
            clock=clock,
        )
        self.sinks: List[Sink] = list(sinks)
        self._clock = clock
        self._latest: Dict[Domain, SourceResult] = {}
        self._cycle_seq = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._stop_requested = False

        logger.info(
            "FusionOrchestrator: %d sources (%s)",
            len(self._sources), ", ".join(d.value for d in self._sources),
        )

    @classmethod
    def from_config(
        cls,
        config: FusionConfig,
        sources: Optional[Sequence[SourceClient]] = None,
        sinks: Iterable[Sink] = (),
    ) -> "FusionOrchestrator":
        """Wire cache, sources, baseline persistence and exporter from config."""
        durable = JsonDirectoryStore(config.cache_dir) if config.cache_dir else None
        cache = TieredCache(durable=durable)
        if sources is None:
            sources = build_sources(config, cache=cache)

        baseline = BaselineStore.from_settings(config.baseline)
        baseline.load()
        scorer = InstabilityScorer(weights=config.instability, baseline=baseline)

        sinks = list(sinks)
        if config.export_results:
            sinks.append(JsonCycleExporter(config.output_root))
        return cls(sources, config=config, cache=cache, scorer=scorer, sinks=sinks)

    @property
    def sources(self) -> Dict[Domain, SourceClient]:
        return dict(self._sources)

    # ── Polling ────────────────────────────────────────────────────────────────

    async def poll_source(self, source: SourceClient) -> SourceResult:
        """Poll one source and store its result as the domain's latest."""
        try:
            result = await source.poll()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("FusionOrchestrator: %s poll raised unexpectedly", source.name)
            result = SourceResult(
                domain=source.domain,
                source=source.name,
                status=SourceStatus.ERROR,
                cause=f"{type(exc).__name__}: {exc}",
                failure_kind=FailureKind.UNEXPECTED,
            )
        self._latest[source.domain] = result
        return result

    async def poll_all(self) -> Dict[Domain, SourceResult]:
        """Poll every source concurrently."""
        results = await asyncio.gather(*(self.poll_source(s) for s in self._sources.values()))
        return {r.domain: r for r in results}

    def snapshot(self) -> Dict[Domain, SourceResult]:
        """Latest result per registered domain.

        Domains that have not completed a poll yet report DEGRADED.
        """
        snap: Dict[Domain, SourceResult] = {}
        for domain, source in self._sources.items():
            result = self._latest.get(domain)
            if result is None:
                result = SourceResult(
                    domain=domain,
                    source=source.name,
                    status=SourceStatus.DEGRADED,
                    cause=NO_COMPLETED_FETCH,
                    failure_kind=FailureKind.DEGRADED,
                )
            snap[domain] = result
        return snap

    # ── Cycle ──────────────────────────────────────────────────────────────────

    def _next_cycle_id(self, ts: datetime) -> str:
        self._cycle_seq += 1
        return f"{ts:%Y%m%dT%H%M%S}-{self._cycle_seq:04d}"

    async def run_cycle(self) -> FusionCycleResult:
        """Run one fusion cycle over a single snapshot and publish it."""
        ts = self._clock()
        snapshot = self.snapshot()
        result = FusionCycleResult(
            cycle_id=self._next_cycle_id(ts),
            timestamp=ts,
            domain_status={d: DomainStatus.from_result(r) for d, r in snapshot.items()},
        )
        log = get_cycle_logger(__name__, result.cycle_id)

        signals: List[RawSignal] = [s for r in snapshot.values() for s in r.signals]
        result.raw_signal_count = len(signals)
        degraded = result.degraded_domains
        if degraded:
            msg = f"Degraded domains: {', '.join(d.value for d in degraded)}"
            result.warnings.append(msg)
            log.warning(msg)

        # ── Deduplication ─────────────────────────────────────────────────────
        deduped: List[RawSignal] = signals
        record = result.log_phase_start("dedupe")
        try:
            deduped = self.deduplicator.dedupe(signals)
            result.deduplicated_count = len(deduped)
            result.log_phase_end(record)
        except Exception as exc:
            result.log_phase_end(record, status="FAILED")
            log.exception("Deduplication failed: %s", exc)
            result.errors.append(f"dedupe failed: {exc}")
            result.deduplicated_count = len(signals)

        # ── Convergence ───────────────────────────────────────────────────────
        record = result.log_phase_start("convergence")
        try:
            result.clusters = self.detector.detect(deduped)
            result.convergence_stats = self.detector.stats
            result.warnings.extend(self.detector.stats.warnings)
            result.log_phase_end(record)
        except Exception as exc:
            result.log_phase_end(record, status="FAILED")
            log.exception("Convergence detection failed: %s", exc)
            result.errors.append(f"convergence failed: {exc}")

        # ── Instability ───────────────────────────────────────────────────────
        record = result.log_phase_start("instability")
        try:
            by_country = self._collect_sub_scores(deduped)
            result.records = self.scorer.score_all(by_country, ts, degraded_domains=degraded)
            if self.scorer.baseline.path is not None:
                await asyncio.to_thread(self.scorer.baseline.save)
            result.log_phase_end(record)
        except Exception as exc:
            result.log_phase_end(record, status="FAILED")
            log.exception("Instability scoring failed: %s", exc)
            result.errors.append(f"instability failed: {exc}")

        log.info(
            "Cycle complete: %d raw → %d deduplicated signals, %d clusters, %d countries",
            result.raw_signal_count, result.deduplicated_count,
            len(result.clusters), len(result.records),
        )
        await self._publish(result)
        return result

    def _collect_sub_scores(self, signals: Sequence[RawSignal]) -> Dict[str, Dict[Domain, float]]:
        by_domain: Dict[Domain, List[RawSignal]] = defaultdict(list)
        for s in signals:
            by_domain[s.domain].append(s)

        by_country: Dict[str, Dict[Domain, float]] = defaultdict(dict)
        for domain, source in self._sources.items():
            for country, value in source.sub_scores(by_domain.get(domain, [])).items():
                by_country[country][domain] = value
        return dict(by_country)

    async def _publish(self, result: FusionCycleResult) -> None:
        for sink in self.sinks:
            try:
                outcome = sink(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("FusionOrchestrator: sink %r failed: %s", sink, exc)
                result.errors.append(f"sink {getattr(sink, '__name__', type(sink).__name__)} failed: {exc}")

    async def run_once(self) -> FusionCycleResult:
        """Poll every source once, then run one cycle."""
        await self.poll_all()
        return await self.run_cycle()

    def sweep_caches(self) -> int:
        """Sweep the shared cache and every distinct source cache."""
        caches: Dict[int, TieredCache] = {}
        if self.cache is not None:
            caches[id(self.cache)] = self.cache
        for source in self._sources.values():
            caches.setdefault(id(source.cache), source.cache)
        return sum(c.sweep(self.config.cache_max_age_seconds) for c in caches.values())

    # ── Long-running loop ──────────────────────────────────────────────────────

    def stop(self) -> None:
        """Request shutdown; loops exit at their next wait."""
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_requested

    async def _sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; True if stop was requested meanwhile."""
        assert self._stop_event is not None
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self._stop_event.is_set()

    async def _source_loop(self, source: SourceClient) -> None:
        interval = source.settings.poll_interval_seconds
        while not await self._sleep(interval):
            await self.poll_source(source)

    async def _cycle_loop(self, max_cycles: Optional[int]) -> None:
        completed = 0
        while not self._stop_event.is_set():
            await self.run_cycle()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                self.stop()
                break
            if await self._sleep(self.config.cycle_interval_seconds):
                break

    async def _sweep_loop(self) -> None:
        while not await self._sleep(self.config.cache_sweep_interval_seconds):
            try:
                await asyncio.to_thread(self.sweep_caches)
            except Exception as exc:
                logger.exception("FusionOrchestrator: cache sweep failed: %s", exc)

    def _install_sigterm(self, loop: asyncio.AbstractEventLoop) -> bool:
        def _on_sigterm() -> None:  # pragma: no cover
            logger.warning("SignalFusion: SIGTERM received — stopping after the current step")
            self.stop()

        try:
            loop.add_signal_handler(signal.SIGTERM, _on_sigterm)
            return True
        except (NotImplementedError, RuntimeError, ValueError):
            # Not on the main thread, or the platform has no signal support
            logger.debug("FusionOrchestrator: SIGTERM handler not installed")
            return False

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """Poll, score and sweep until stop(), SIGTERM, or ``max_cycles`` cycles."""
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()
        loop = asyncio.get_running_loop()
        installed = self._install_sigterm(loop)

        logger.info("FusionOrchestrator: starting (max_cycles=%s)", max_cycles)
        await self.poll_all()

        tasks = [
            asyncio.create_task(self._source_loop(s), name=f"poll:{s.name}")
            for s in self._sources.values()
        ]
        tasks.append(asyncio.create_task(self._sweep_loop(), name="cache-sweep"))
        cycle_task = asyncio.create_task(self._cycle_loop(max_cycles), name="fusion-cycle")

        try:
            await cycle_task
        finally:
            self.stop()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if installed:
                loop.remove_signal_handler(signal.SIGTERM)
            logger.info("FusionOrchestrator: stopped after %d cycles", self._cycle_seq)
