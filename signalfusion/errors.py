"""Error taxonomy for SignalFusion.

Upstream failures are raised as typed exceptions inside clients and sources,
then converted to an explicit result status at the SourceClient /
CircuitBreaker boundary. Only ConfigurationError is allowed to escape to the
caller — it is fatal at startup.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Why a fetch produced no live data."""

    UPSTREAM_UNAVAILABLE = "upstream_unavailable"   # network error, 5xx, bad status
    UPSTREAM_TIMEOUT = "upstream_timeout"
    MALFORMED_PAYLOAD = "malformed_payload"         # schema mismatch from the source
    DEGRADED = "degraded"                           # breaker open, operation not attempted
    UNEXPECTED = "unexpected"                       # bug in a fetch/normalize implementation


class SignalFusionError(Exception):
    """Base class for all SignalFusion exceptions."""


class ConfigurationError(SignalFusionError, ValueError):
    """Invalid configuration detected at startup (weights, domains, intervals)."""


class UpstreamError(SignalFusionError):
    """A source could not deliver a usable payload."""

    kind: FailureKind = FailureKind.UPSTREAM_UNAVAILABLE

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class UpstreamUnavailable(UpstreamError):
    """Network failure, non-200 status, or exhausted retries."""

    kind = FailureKind.UPSTREAM_UNAVAILABLE


class UpstreamTimeout(UpstreamError):
    """The fetch exceeded its per-domain timeout."""

    kind = FailureKind.UPSTREAM_TIMEOUT


class MalformedPayload(UpstreamError):
    """The source answered, but the body did not match the expected schema."""

    kind = FailureKind.MALFORMED_PAYLOAD
