"""Cycle orchestration data models for SignalFusion.

Defines FusionCycleResult (everything one scoring cycle publishes) and
PhaseRecord (per-stage timing log inside a cycle).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from signalfusion.models.fusion import ConvergenceCluster, ConvergenceStats
from signalfusion.models.instability import CountryInstabilityRecord
from signalfusion.models.signals import Domain, SourceResult, SourceStatus
from signalfusion.utils.date_utils import utcnow


@dataclass
class PhaseRecord:
    """Timing and status record for a single stage of a cycle."""

    phase_name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: str = "OK"

    @property
    def elapsed_seconds(self) -> float:
        """Compute elapsed time in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


@dataclass
class DomainStatus:
    """What a consumer needs to tell "no data" from "error" for one domain."""

    status: SourceStatus
    signal_count: int = 0
    cause: Optional[str] = None
    fetched_at: Optional[datetime] = None

    @classmethod
    def from_result(cls, result: SourceResult) -> "DomainStatus":
        return cls(
            status=result.status,
            signal_count=len(result.signals),
            cause=result.cause,
            fetched_at=result.fetched_at,
        )


@dataclass
class FusionCycleResult:
    """Complete output of one FusionOrchestrator cycle.

    Every field is derived from a single snapshot of source results.
    """

    cycle_id: str
    timestamp: datetime
    domain_status: Dict[Domain, DomainStatus] = field(default_factory=dict)
    clusters: List[ConvergenceCluster] = field(default_factory=list)
    records: Dict[str, CountryInstabilityRecord] = field(default_factory=dict)
    raw_signal_count: int = 0
    deduplicated_count: int = 0
    convergence_stats: Optional[ConvergenceStats] = None
    phase_log: List[PhaseRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def degraded_domains(self) -> List[Domain]:
        """Domains whose status is degraded or error, in enum order."""
        return [
            d for d in Domain
            if d in self.domain_status
            and self.domain_status[d].status in (SourceStatus.DEGRADED, SourceStatus.ERROR)
        ]

    def log_phase_start(self, phase_name: str) -> PhaseRecord:
        """Record the start of a cycle stage."""
        record = PhaseRecord(phase_name=phase_name, start_time=utcnow())
        self.phase_log.append(record)
        return record

    def log_phase_end(self, record: PhaseRecord, status: str = "OK") -> None:
        """Record the end of a cycle stage."""
        record.end_time = utcnow()
        record.status = status
