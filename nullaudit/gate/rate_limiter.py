"""Admission gate: token bucket guarding outbound reviewer work."""

import logging
import math
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from nullaudit.config import RateLimitConfig

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterState:
    """Bucket state. Invariant: 0 <= tokens <= max_tokens."""
    tokens: float
    max_tokens: float
    refill_rate: float  # tokens per window
    window_ms: float
    last_refill: float  # ms timestamp


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    retry_after_ms: int = 0


class AdmissionGate:
    """Token bucket with whole-token refill per window fraction."""

    def __init__(
        self,
        rate_limit: Optional[RateLimitConfig],
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize admission gate.

        Args:
            rate_limit: ``requests`` per ``window_ms``; None disables the gate
            clock: Returns seconds since epoch (injectable for tests)
        """
        self._clock = clock
        self.lock = threading.Lock()
        self._state: Optional[RateLimiterState] = None
        if rate_limit is not None:
            self._state = RateLimiterState(
                tokens=float(rate_limit.requests),
                max_tokens=float(rate_limit.requests),
                refill_rate=float(rate_limit.requests),
                window_ms=float(rate_limit.window_ms),
                last_refill=self._now_ms(),
            )
            logger.info(
                f"Admission gate enabled: {rate_limit.requests} requests / {rate_limit.window_ms}ms"
            )

    @property
    def enabled(self) -> bool:
        return self._state is not None

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _refill(self, state: RateLimiterState, now: float) -> float:
        """Add whole tokens for elapsed time; returns elapsed ms since last refill."""
        elapsed = max(0.0, now - state.last_refill)
        new_tokens = math.floor(elapsed / state.window_ms * state.refill_rate)
        if new_tokens > 0:
            state.tokens = min(state.max_tokens, state.tokens + new_tokens)
            state.last_refill = now
            elapsed = 0.0
        return elapsed

    def try_acquire(self) -> AdmissionDecision:
        """Take one token if available, otherwise return a wait hint."""
        if self._state is None:
            return AdmissionDecision(allowed=True)

        with self.lock:
            state = self._state
            elapsed = self._refill(state, self._now_ms())
            if state.tokens < 1:
                retry_after_ms = max(0, int(math.ceil(state.window_ms - elapsed)))
                logger.debug(f"Admission rejected, retry after {retry_after_ms}ms")
                return AdmissionDecision(allowed=False, retry_after_ms=retry_after_ms)

            state.tokens -= 1
            logger.debug(f"Admission granted, {state.tokens:.0f} tokens remaining")
            return AdmissionDecision(allowed=True)

    def snapshot(self) -> Optional[RateLimiterState]:
        """Copy of the current state, or None when the gate is disabled."""
        if self._state is None:
            return None
        with self.lock:
            return replace(self._state)
