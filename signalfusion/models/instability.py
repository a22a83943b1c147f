"""Country instability data models for SignalFusion."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from signalfusion.models.signals import Domain
from signalfusion.utils.date_utils import parse_timestamp


@dataclass(frozen=True)
class CountryInstabilityRecord:
    """One scoring cycle's CII for one country.

    Records are superseded by the next cycle, never mutated; history lives in
    the BaselineStore.
    """

    iso2: str
    timestamp: datetime
    sub_scores: Dict[Domain, float]
    baseline_deviation: float
    cii: float                          # 0–100
    composite: float = 0.0              # weighted sub-score sum before the baseline nudge
    level: str = "LOW"
    trend: str = "new"                  # rising | falling | stable | new
    previous_cii: Optional[float] = None
    baseline_sufficient: bool = False
    degraded_domains: List[Domain] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iso2": self.iso2,
            "timestamp": self.timestamp.isoformat(),
            "sub_scores": {d.value: v for d, v in self.sub_scores.items()},
            "baseline_deviation": self.baseline_deviation,
            "cii": self.cii,
            "composite": self.composite,
            "level": self.level,
            "trend": self.trend,
            "previous_cii": self.previous_cii,
            "baseline_sufficient": self.baseline_sufficient,
            "degraded_domains": [d.value for d in self.degraded_domains],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CountryInstabilityRecord":
        timestamp = parse_timestamp(data["timestamp"])
        if timestamp is None:
            raise ValueError(f"Unparseable record timestamp: {data['timestamp']!r}")
        return cls(
            iso2=data["iso2"],
            timestamp=timestamp,
            sub_scores={Domain.parse(k): float(v) for k, v in data.get("sub_scores", {}).items()},
            baseline_deviation=float(data.get("baseline_deviation", 0.0)),
            cii=float(data["cii"]),
            composite=float(data.get("composite", 0.0)),
            level=data.get("level", "LOW"),
            trend=data.get("trend", "new"),
            previous_cii=data.get("previous_cii"),
            baseline_sufficient=bool(data.get("baseline_sufficient", False)),
            degraded_domains=[Domain.parse(d) for d in data.get("degraded_domains", [])],
        )
