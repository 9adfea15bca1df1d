"""Runs one reviewer for one audit, never raising to the caller.

Tier 1 is the model call with bounded retries. Tier 2 is the offline
signature scan from ``heuristics``. A reviewer whose tiers both fail
comes back as an outcome carrying ``error`` and no findings.
"""

import asyncio
import dataclasses
import logging
import time
from typing import List, Optional

from nullaudit.data_models import SEVERITY_LEVELS, Finding, Location, ReviewerOutcome
from nullaudit.reviewers.base import ModelCaller, build_call_payload
from nullaudit.reviewers.heuristics import DEFAULT_FILE, heuristic_scan
from nullaudit.schema import AuditRequest, FindingCandidate, ModelCallResponse
from nullaudit.utils.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5

_SEVERITY_ALIASES = {
    "info": "low",
    "informational": "low",
    "moderate": "medium",
    "severe": "high",
}


def normalize_severity(value: str) -> str:
    severity = str(value or "").strip().lower()
    severity = _SEVERITY_ALIASES.get(severity, severity)
    return severity if severity in SEVERITY_LEVELS else "medium"


def stamp_findings(reviewer_id: str, findings: List[Finding]) -> List[Finding]:
    """Attach reviewer id and the ``Detected by`` evidence line."""
    marker = f"Detected by {reviewer_id}"
    stamped = []
    for finding in findings:
        evidence = list(finding.evidence)
        if marker not in evidence:
            evidence.append(marker)
        stamped.append(dataclasses.replace(finding, reviewer_id=reviewer_id, evidence=evidence))
    return stamped


def candidates_to_findings(reviewer_id: str, response: ModelCallResponse) -> List[Finding]:
    """Convert wire candidates into findings."""
    findings = []
    for index, candidate in enumerate(response.findings, start=1):
        findings.append(_candidate_to_finding(reviewer_id, index, candidate, response.confidence))
    return findings


def _candidate_to_finding(
    reviewer_id: str,
    index: int,
    candidate: FindingCandidate,
    default_confidence: Optional[float],
) -> Finding:
    if candidate.confidence is not None:
        confidence = candidate.confidence
    elif default_confidence is not None:
        confidence = default_confidence
    else:
        confidence = DEFAULT_CONFIDENCE

    location = None
    if candidate.location is not None and (candidate.location.file or candidate.location.line is not None):
        location = Location(file=candidate.location.file, line=candidate.location.line)

    return Finding(
        id=candidate.id or f"{reviewer_id}-finding-{index}",
        type=candidate.type,
        severity=normalize_severity(candidate.severity),
        confidence_score=float(confidence),
        evidence=list(candidate.evidence),
        location=location,
        risk_categories=list(candidate.risk_categories),
        compliance_violations=list(candidate.compliance_violations),
        description=candidate.description,
        reviewer_id=reviewer_id,
        metadata={**candidate.metadata, "source": "model"},
    )


class ReviewerInvoker:
    """Invokes reviewers through the model-call capability."""

    def __init__(
        self,
        caller: Optional[ModelCaller],
        retry_config: Optional[RetryConfig] = None,
        enable_fallback: bool = True,
        fallback_delay_ms: int = 0,
    ):
        """
        Initialize reviewer invoker.

        Args:
            caller: Model-call capability; None means tier 1 is unavailable
            retry_config: Backoff policy for tier 1
            enable_fallback: Run the heuristic scan when tier 1 fails
            fallback_delay_ms: Pause before the heuristic scan
        """
        self.caller = caller
        self.retry_config = retry_config or RetryConfig()
        self.enable_fallback = enable_fallback
        self.fallback_delay_ms = fallback_delay_ms

    async def invoke(self, reviewer_id: str, request: AuditRequest) -> ReviewerOutcome:
        started = time.monotonic()
        attempts = 0

        async def _attempt() -> ModelCallResponse:
            nonlocal attempts
            attempts += 1
            return await self.caller.call(reviewer_id, build_call_payload(request))

        def _on_retry(attempt: int, error: BaseException, delay: float) -> None:
            logger.warning(
                f"Reviewer {reviewer_id} attempt {attempt} failed for project "
                f"{request.project_id}: {error}; retrying in {delay:.2f}s"
            )

        if self.caller is None:
            logger.info(
                f"No model-call capability for reviewer {reviewer_id} "
                f"(project {request.project_id}); using heuristic scan"
            )
            outcome = await self._fallback(reviewer_id, request, "model call unavailable")
        else:
            try:
                response = await retry_async(_attempt, config=self.retry_config, on_retry=_on_retry)
                findings = candidates_to_findings(reviewer_id, response)
                outcome = ReviewerOutcome(
                    reviewer_id=reviewer_id,
                    findings=stamp_findings(reviewer_id, findings),
                    compute_cost=response.cost,
                )
            except Exception as e:
                logger.warning(
                    f"Reviewer {reviewer_id} failed for project {request.project_id} "
                    f"after {attempts} attempt(s): {e}"
                )
                outcome = await self._fallback(reviewer_id, request, str(e))

        outcome.attempts = attempts
        outcome.latency_ms = int((time.monotonic() - started) * 1000)
        return outcome

    async def _fallback(self, reviewer_id: str, request: AuditRequest, reason: str) -> ReviewerOutcome:
        if not self.enable_fallback:
            return ReviewerOutcome(reviewer_id=reviewer_id, error=reason)

        if self.fallback_delay_ms > 0:
            await asyncio.sleep(self.fallback_delay_ms / 1000.0)

        file_path = request.targets[0] if len(request.targets) == 1 else DEFAULT_FILE
        try:
            findings = heuristic_scan(request.codebase, reviewer_id=reviewer_id, file_path=file_path)
        except Exception as e:
            logger.error(
                f"Heuristic scan failed for reviewer {reviewer_id} "
                f"(project {request.project_id}): {e}"
            )
            return ReviewerOutcome(reviewer_id=reviewer_id, error=f"{reason}; fallback failed: {e}")

        logger.warning(
            f"Reviewer {reviewer_id} fell back to heuristic scan for project "
            f"{request.project_id}: {len(findings)} finding(s)"
        )
        return ReviewerOutcome(
            reviewer_id=reviewer_id,
            findings=stamp_findings(reviewer_id, findings),
            used_fallback=True,
        )
