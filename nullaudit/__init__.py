"""NullAudit: multi-reviewer security audits with weighted consensus."""

__version__ = "1.0.0"

from typing import Optional

from nullaudit.config import EngineConfig, RateLimitConfig
from nullaudit.data_models import AuditResult, AuditSession, Finding, HumanTask, Location
from nullaudit.errors import (
    AllReviewersFailedError,
    AuditError,
    AuditTimeoutError,
    NotFoundError,
    RateLimitError,
    ReviewerError,
    ValidationError,
)
from nullaudit.orchestrator import AuditOrchestrator
from nullaudit.reviewers import HttpModelCaller, ModelCaller
from nullaudit.schema import AuditOptions, AuditRequest
from nullaudit.tools import ToolRegistry


def create_orchestrator(
    config: Optional[EngineConfig] = None,
    caller: Optional[ModelCaller] = None,
) -> AuditOrchestrator:
    """
    Build an orchestrator.

    Without an explicit caller, an HTTP caller is created when an API key
    is configured; otherwise every reviewer runs the heuristic scan.
    """
    config = config or EngineConfig.from_env()
    if caller is None and config.api_key:
        caller = HttpModelCaller(
            config.api_url,
            config.api_key,
            timeout_seconds=config.request_timeout_ms / 1000.0,
        )
    return AuditOrchestrator(config, caller=caller)


__all__ = [
    "__version__",
    "AllReviewersFailedError",
    "AuditError",
    "AuditOptions",
    "AuditOrchestrator",
    "AuditRequest",
    "AuditResult",
    "AuditSession",
    "AuditTimeoutError",
    "EngineConfig",
    "Finding",
    "HttpModelCaller",
    "HumanTask",
    "Location",
    "ModelCaller",
    "NotFoundError",
    "RateLimitConfig",
    "RateLimitError",
    "ReviewerError",
    "ToolRegistry",
    "ValidationError",
    "create_orchestrator",
]
