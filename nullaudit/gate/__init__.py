"""Admission control for outbound reviewer calls."""

from nullaudit.gate.rate_limiter import AdmissionDecision, AdmissionGate, RateLimiterState

__all__ = ["AdmissionDecision", "AdmissionGate", "RateLimiterState"]
