"""Cycle result exporters for SignalFusion.

Sinks receive every FusionCycleResult the orchestrator publishes. The JSON
exporter writes ``cycle_<id>.json`` plus a rolling ``latest.json``.
No business logic — serialization and file I/O only.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from signalfusion.io.persistence import ensure_output_dir, save_json, to_jsonable
from signalfusion.models.cycle import FusionCycleResult

logger = logging.getLogger(__name__)


def cycle_result_to_dict(result: FusionCycleResult) -> Dict[str, Any]:
    """JSON-safe dict of a cycle result, including derived fields."""
    payload = to_jsonable(result)
    payload["degraded_domains"] = [d.value for d in result.degraded_domains]
    payload["elapsed_seconds"] = round(sum(p.elapsed_seconds for p in result.phase_log), 3)
    return payload


def export_json_artifact(data: Any, output_path: str | Path) -> bool:
    """Write ``data`` to a JSON file via the persistence layer.

    Returns:
        True on success, False on error (logged).
    """
    try:
        save_json(data, output_path)
        logger.debug("Exported JSON: %s", output_path)
        return True
    except (OSError, TypeError, ValueError) as exc:
        logger.error("Failed to export JSON to %s: %s", output_path, exc)
        return False


class JsonCycleExporter:
    """Orchestrator sink writing each cycle to ``output_root``.

    Args:
        output_root: Directory for cycle files.
        keep_history: When False only ``latest.json`` is written.
    """

    def __init__(self, output_root: str | Path, keep_history: bool = True) -> None:
        self.output_root = Path(output_root)
        self.keep_history = keep_history
        self.last_path: Optional[Path] = None

    def __call__(self, result: FusionCycleResult) -> bool:
        out_dir = ensure_output_dir(self.output_root)
        payload = cycle_result_to_dict(result)
        ok = True
        if self.keep_history:
            path = out_dir / f"cycle_{result.cycle_id}.json"
            ok = export_json_artifact(payload, path)
            if ok:
                self.last_path = path
        ok = export_json_artifact(payload, out_dir / "latest.json") and ok
        if ok:
            logger.info(
                "Exported cycle %s (%d clusters, %d countries) → %s",
                result.cycle_id, len(result.clusters), len(result.records), out_dir,
            )
        return ok
