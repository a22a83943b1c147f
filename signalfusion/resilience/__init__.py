"""Resilience primitives for SignalFusion sources."""

from signalfusion.resilience.circuit_breaker import CircuitBreaker

__all__ = ["CircuitBreaker"]
