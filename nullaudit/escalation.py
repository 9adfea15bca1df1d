"""Human-review escalation for merged findings."""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from nullaudit.data_models import Finding, HumanTask

logger = logging.getLogger(__name__)


class HumanReviewEscalator(ABC):
    """Decides whether a merged finding needs a human task."""

    @abstractmethod
    async def evaluate(self, finding: Finding, context: Dict[str, Any]) -> Optional[HumanTask]:
        """Return a task for ``finding`` or None."""


@dataclass
class EscalationPolicy:
    """
    Escalation rule.

    A finding matches when its severity is listed and either its
    confidence is below ``confidence_threshold`` or it shares a risk
    category with ``risk_categories``.
    """
    name: str
    severities: List[str]
    confidence_threshold: float
    risk_categories: List[str] = field(default_factory=list)
    task_type: str = "review"

    def matches(self, finding: Finding) -> bool:
        if finding.severity not in self.severities:
            return False
        if finding.confidence_score < self.confidence_threshold:
            return True
        return bool(set(self.risk_categories).intersection(finding.risk_categories))


DEFAULT_POLICIES = [
    EscalationPolicy(
        name="critical_findings",
        severities=["critical"],
        confidence_threshold=0.95,
        risk_categories=["fund_loss", "code_execution"],
        task_type="escalation",
    ),
    EscalationPolicy(
        name="uncertain_high_risk",
        severities=["high"],
        confidence_threshold=0.85,
        risk_categories=["auth_bypass", "data_breach"],
    ),
]


class PolicyEscalator(HumanReviewEscalator):
    """Escalates by the first matching policy."""

    def __init__(self, policies: Optional[List[EscalationPolicy]] = None):
        self.policies = list(DEFAULT_POLICIES if policies is None else policies)

    async def evaluate(self, finding: Finding, context: Dict[str, Any]) -> Optional[HumanTask]:
        for policy in self.policies:
            if not policy.matches(finding):
                continue
            logger.info(f"Finding {finding.id} escalated by policy '{policy.name}'")
            where = ""
            if finding.location:
                where = f" at {finding.location.file}:{finding.location.line}"
            return HumanTask(
                id=f"task_{uuid.uuid4().hex[:12]}",
                type=policy.task_type,
                priority=finding.severity,
                title=f"Review {finding.type}{where}",
                description=finding.description or f"{finding.type} requires human review",
                finding_id=finding.id,
                metadata={
                    **context,
                    "policy": policy.name,
                    "confidence_score": finding.confidence_score,
                },
            )
        return None
