"""SignalFusion I/O package: JSON persistence and cycle exporters."""

from signalfusion.io.exporters import JsonCycleExporter, cycle_result_to_dict
from signalfusion.io.persistence import load_json, save_json

__all__ = ["JsonCycleExporter", "cycle_result_to_dict", "load_json", "save_json"]
