"""Reviewer invocation: model calls, retries and heuristic fallback."""

from nullaudit.reviewers.base import ModelCaller, build_call_payload
from nullaudit.reviewers.heuristics import VULNERABILITY_SIGNATURES, heuristic_scan
from nullaudit.reviewers.http_caller import HttpModelCaller
from nullaudit.reviewers.invoker import ReviewerInvoker, stamp_findings

__all__ = [
    "HttpModelCaller",
    "ModelCaller",
    "ReviewerInvoker",
    "VULNERABILITY_SIGNATURES",
    "build_call_payload",
    "heuristic_scan",
    "stamp_findings",
]
