"""SignalFusion — resilient multi-source signal fusion.

Public API surface:
    - RawSignal / Domain: the normalized observation every source emits
    - signalfusion.orchestrator.FusionOrchestrator: the cycle driver
    - config.settings.FusionConfig: runtime configuration

The orchestrator is not re-exported here so that config.settings can import
the model layer without a circular import.
"""

__version__ = "1.0.0"
__author__ = "SignalFusion Contributors"

from signalfusion.models.signals import Domain, RawSignal, SourceStatus

__all__ = [
    "__version__",
    "Domain",
    "RawSignal",
    "SourceStatus",
]
