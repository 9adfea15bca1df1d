#!/usr/bin/env python3
"""Regression tests: admission gate token bucket."""

import threading

import pytest
from nullaudit.config import RateLimitConfig
from nullaudit.gate import AdmissionGate


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float):
        self.now += ms / 1000.0


# ============================================================================
# Token accounting
# ============================================================================

def test_disabled_gate_always_allows():
    """No configured limit means the gate never rejects."""
    gate = AdmissionGate(None)

    assert gate.enabled is False
    assert gate.snapshot() is None
    for _ in range(1000):
        assert gate.try_acquire().allowed is True


def test_allows_up_to_capacity_then_rejects():
    """Exactly `requests` acquisitions succeed in a fresh window."""
    clock = FakeClock()
    gate = AdmissionGate(RateLimitConfig(requests=3, window_ms=1000), clock=clock)

    assert [gate.try_acquire().allowed for _ in range(3)] == [True, True, True]
    decision = gate.try_acquire()
    assert decision.allowed is False
    assert decision.retry_after_ms == 1000


def test_retry_hint_shrinks_with_elapsed_time():
    """Wait hint is window minus time since last refill."""
    clock = FakeClock()
    gate = AdmissionGate(RateLimitConfig(requests=1, window_ms=1000), clock=clock)

    assert gate.try_acquire().allowed is True
    clock.advance_ms(375)
    decision = gate.try_acquire()
    assert decision.allowed is False
    assert decision.retry_after_ms == 625


def test_refill_adds_whole_tokens_only():
    """Partial windows do not add fractional tokens."""
    clock = FakeClock()
    gate = AdmissionGate(RateLimitConfig(requests=2, window_ms=1000), clock=clock)

    gate.try_acquire()
    gate.try_acquire()
    clock.advance_ms(375)  # 0.75 tokens -> floor 0
    assert gate.try_acquire().allowed is False

    clock.advance_ms(125)  # 500ms total -> 1 token
    assert gate.try_acquire().allowed is True
    assert gate.try_acquire().allowed is False


def test_refill_capped_at_max_tokens():
    """Long idle periods never overfill the bucket."""
    clock = FakeClock()
    gate = AdmissionGate(RateLimitConfig(requests=5, window_ms=1000), clock=clock)

    gate.try_acquire()
    clock.advance_ms(60_000)
    gate.try_acquire()

    state = gate.snapshot()
    assert state.tokens == 4
    assert state.max_tokens == 5


def test_tokens_never_leave_bounds():
    """Across a mixed sequence of calls tokens stay within [0, max]."""
    clock = FakeClock()
    gate = AdmissionGate(RateLimitConfig(requests=4, window_ms=200), clock=clock)

    steps = [0, 10, 0, 0, 0, 0, 75, 0, 300, 0, 0, 1, 49, 0, 0, 0, 0, 0, 1000]
    for step in steps:
        clock.advance_ms(step)
        gate.try_acquire()
        state = gate.snapshot()
        assert 0 <= state.tokens <= state.max_tokens


def test_concurrent_acquire_conserves_tokens():
    """Threads racing the gate consume exactly the available tokens."""
    clock = FakeClock()
    gate = AdmissionGate(RateLimitConfig(requests=50, window_ms=60_000), clock=clock)
    allowed = []
    lock = threading.Lock()

    def worker():
        for _ in range(20):
            decision = gate.try_acquire()
            with lock:
                allowed.append(decision.allowed)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(allowed) == 50
    assert gate.snapshot().tokens == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
