#!/usr/bin/env python3
"""Regression tests: reviewer invocation, retries and heuristic fallback."""

import asyncio

import pytest
from nullaudit.data_models import Finding
from nullaudit.errors import ReviewerError
from nullaudit.reviewers import HttpModelCaller, ModelCaller, ReviewerInvoker, heuristic_scan, stamp_findings
from nullaudit.reviewers.heuristics import FALLBACK_CONFIDENCE_FACTOR
from nullaudit.schema import AuditRequest, ModelCallResponse
from nullaudit.utils.retry import ProviderRateLimitError, RetryConfig, ServiceUnavailableError, retry_async

VULNERABLE_CODE = (
    'query = "SELECT * FROM users WHERE id = " + user_id\n'
    "result = eval(user_input)\n"
)


class ScriptedCaller(ModelCaller):
    """Returns or raises the next scripted item on each call."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    async def call(self, reviewer_id, payload):
        self.calls.append((reviewer_id, payload))
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item


def _request(**overrides) -> AuditRequest:
    data = {"project_id": "proj-1", "codebase": VULNERABLE_CODE, "targets": ["app.py"]}
    data.update(overrides)
    return AuditRequest.model_validate(data)


def _response(confidence=0.9, **kwargs) -> ModelCallResponse:
    return ModelCallResponse.model_validate({
        "findings": [
            {
                "type": "SQL Injection",
                "severity": "critical",
                "confidence": confidence,
                "description": "String-built query",
                "location": {"file": "app.py", "line": 1},
                "evidence": ["user_id concatenated into SQL"],
            }
        ],
        **kwargs,
    })


def _no_delay(max_retries=3) -> RetryConfig:
    return RetryConfig(max_retries=max_retries, base_delay=0.0)


# ============================================================================
# Retry policy
# ============================================================================

def test_backoff_doubles_per_retry():
    """Retry k waits retry_delay * 2^(k-1)."""
    config = RetryConfig.from_ms(3, 1000)
    assert [config.calculate_delay(attempt) for attempt in range(3)] == [1.0, 2.0, 4.0]


def test_retry_after_hint_takes_precedence():
    config = RetryConfig.from_ms(3, 1000)
    assert config.calculate_delay(0, retry_after=7.5) == 7.5


def test_retry_async_attempt_count():
    """One initial attempt plus max_retries retries."""
    attempts = []
    retries = []

    async def always_fails():
        attempts.append(1)
        raise ServiceUnavailableError("down")

    with pytest.raises(ServiceUnavailableError):
        asyncio.run(retry_async(
            always_fails,
            config=_no_delay(3),
            on_retry=lambda attempt, error, delay: retries.append(attempt),
        ))

    assert len(attempts) == 4
    assert retries == [1, 2, 3]


def test_retry_async_non_retryable_propagates_immediately():
    attempts = []

    async def bad_input():
        attempts.append(1)
        raise ValueError("malformed")

    with pytest.raises(ValueError):
        asyncio.run(retry_async(bad_input, config=_no_delay(3)))
    assert len(attempts) == 1


# ============================================================================
# Invoker
# ============================================================================

def test_successful_call_stamps_findings():
    caller = ScriptedCaller([_response(cost=0.02)])
    invoker = ReviewerInvoker(caller, retry_config=_no_delay())

    outcome = asyncio.run(invoker.invoke("gpt-4", _request()))

    assert outcome.succeeded
    assert outcome.used_fallback is False
    assert outcome.attempts == 1
    assert outcome.compute_cost == 0.02
    finding = outcome.findings[0]
    assert finding.reviewer_id == "gpt-4"
    assert finding.evidence[-1] == "Detected by gpt-4"
    assert finding.id == "gpt-4-finding-1"
    assert finding.location.file == "app.py"
    assert finding.metadata["source"] == "model"

    _, payload = caller.calls[0]
    assert payload["code"] == VULNERABLE_CODE
    assert payload["options"]["depth"] == "standard"


def test_confidence_defaults_from_response_then_constant():
    no_finding_confidence = ModelCallResponse.model_validate({
        "findings": [{"type": "XSS"}],
        "confidence": 0.66,
    })
    invoker = ReviewerInvoker(ScriptedCaller([no_finding_confidence]), retry_config=_no_delay())
    outcome = asyncio.run(invoker.invoke("gpt-4", _request()))
    assert outcome.findings[0].confidence_score == 0.66

    bare = ModelCallResponse.model_validate({"findings": [{"type": "XSS", "severity": "info"}]})
    invoker = ReviewerInvoker(ScriptedCaller([bare]), retry_config=_no_delay())
    outcome = asyncio.run(invoker.invoke("gpt-4", _request()))
    assert outcome.findings[0].confidence_score == 0.5
    assert outcome.findings[0].severity == "low"


def test_transient_failures_then_success():
    caller = ScriptedCaller([
        ServiceUnavailableError("503"),
        ServiceUnavailableError("503"),
        _response(),
    ])
    invoker = ReviewerInvoker(caller, retry_config=_no_delay(3))

    outcome = asyncio.run(invoker.invoke("gpt-4", _request()))

    assert outcome.succeeded
    assert outcome.used_fallback is False
    assert outcome.attempts == 3


def test_exhausted_retries_fall_back_to_heuristics():
    caller = ScriptedCaller([ServiceUnavailableError("down")])
    invoker = ReviewerInvoker(caller, retry_config=_no_delay(2))

    outcome = asyncio.run(invoker.invoke("claude-3-opus", _request()))

    assert outcome.succeeded
    assert outcome.used_fallback is True
    assert outcome.attempts == 3
    assert len(caller.calls) == 3
    types = {f.type for f in outcome.findings}
    assert {"SQL Injection", "Code Injection"} <= types
    assert all(f.reviewer_id == "claude-3-opus" for f in outcome.findings)
    assert all(f.location.file == "app.py" for f in outcome.findings)


def test_failure_without_fallback_returns_error_outcome():
    """Invoker never raises; a failed reviewer is an outcome with an error."""
    caller = ScriptedCaller([RuntimeError("boom")])
    invoker = ReviewerInvoker(caller, retry_config=_no_delay(3), enable_fallback=False)

    outcome = asyncio.run(invoker.invoke("gemini-pro", _request()))

    assert outcome.succeeded is False
    assert outcome.findings == []
    assert "boom" in outcome.error
    # Non-retryable: a single attempt
    assert outcome.attempts == 1


def test_no_caller_uses_heuristic_scan():
    invoker = ReviewerInvoker(None)
    outcome = asyncio.run(invoker.invoke("gpt-4", _request(targets=["a.py", "b.py"])))

    assert outcome.used_fallback is True
    assert outcome.attempts == 0
    assert all(f.location.file == "codebase" for f in outcome.findings)


def test_no_caller_without_fallback_fails():
    invoker = ReviewerInvoker(None, enable_fallback=False)
    outcome = asyncio.run(invoker.invoke("gpt-4", _request()))
    assert outcome.succeeded is False


# ============================================================================
# Heuristics and stamping
# ============================================================================

def test_heuristic_scan_is_deterministic():
    first = heuristic_scan(VULNERABLE_CODE, file_path="app.py")
    second = heuristic_scan(VULNERABLE_CODE, file_path="app.py")
    assert [f.to_dict() for f in first] == [f.to_dict() for f in second]

    sql = next(f for f in first if f.type == "SQL Injection")
    assert sql.location.line == 1
    assert sql.id == "heuristic-sql-injection-1"
    assert sql.confidence_score == pytest.approx(0.8 * FALLBACK_CONFIDENCE_FACTOR)
    assert sql.metadata["source"] == "heuristic"


def test_heuristic_scan_clean_code():
    assert heuristic_scan("def add(a, b):\n    return a + b\n") == []


def test_stamp_findings_idempotent():
    finding = Finding(id="f1", type="XSS", severity="high", confidence_score=0.7)
    once = stamp_findings("gpt-4", [finding])
    twice = stamp_findings("gpt-4", once)

    assert twice[0].evidence == ["Detected by gpt-4"]
    assert finding.evidence == []



# ============================================================================
# HTTP caller
# ============================================================================

class FakeResponse:
    def __init__(self, status, body=None, headers=None):
        self.status = status
        self.body = body if body is not None else {}
        self.headers = headers or {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self):
        return self.body

    async def text(self):
        return str(self.body)


class FakeSession:
    closed = False

    def __init__(self, response):
        self.response = response
        self.requests = []

    def post(self, url, json=None, headers=None):
        self.requests.append((url, json, headers))
        return self.response


def test_http_caller_posts_bearer_request():
    session = FakeSession(FakeResponse(200, {"findings": [{"type": "XSS", "confidence": 0.7}], "cost": 0.01}))
    caller = HttpModelCaller("https://api.example.test/v1/", "key-123", session=session)

    response = asyncio.run(caller.call("gpt-4", {"code": "x"}))

    assert response.findings[0].type == "XSS"
    assert response.cost == 0.01
    url, body, headers = session.requests[0]
    assert url == "https://api.example.test/v1/analyze"
    assert body == {"model": "gpt-4", "code": "x"}
    assert headers["Authorization"] == "Bearer key-123"


def test_http_caller_maps_statuses():
    def call_with(response):
        caller = HttpModelCaller("https://api.example.test", "k", session=FakeSession(response))
        return asyncio.run(caller.call("gpt-4", {}))

    with pytest.raises(ProviderRateLimitError) as exc_info:
        call_with(FakeResponse(429, headers={"Retry-After": "3"}))
    assert exc_info.value.retry_after == 3.0

    with pytest.raises(ServiceUnavailableError):
        call_with(FakeResponse(503))

    with pytest.raises(ReviewerError):
        call_with(FakeResponse(401, {"error": "unauthorized"}))

    with pytest.raises(ReviewerError):
        call_with(FakeResponse(200, {"findings": [{"severity": "high"}]}))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
