"""Data models for the NullAudit consensus engine."""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

Severity = Literal["low", "medium", "high", "critical"]
SessionStatus = Literal["in_progress", "completed", "failed"]

SEVERITY_LEVELS = ("low", "medium", "high", "critical")


@dataclass(frozen=True)
class Location:
    """Source position of a finding."""
    file: str
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"file": self.file, "line": self.line}


@dataclass
class Finding:
    """A security finding, either raw from one reviewer or merged by consensus."""
    id: str
    type: str  # category, e.g. "SQL Injection"
    severity: Severity
    confidence_score: float  # 0.0 to 1.0
    evidence: List[str] = field(default_factory=list)
    location: Optional[Location] = None
    risk_categories: List[str] = field(default_factory=list)
    compliance_violations: List[str] = field(default_factory=list)
    description: str = ""
    reviewer_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "confidence_score": self.confidence_score,
            "evidence": list(self.evidence),
            "location": self.location.to_dict() if self.location else None,
            "risk_categories": list(self.risk_categories),
            "compliance_violations": list(self.compliance_violations),
            "description": self.description,
            "reviewer_id": self.reviewer_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        """Create from dictionary."""
        location = data.get("location")
        return cls(
            id=data.get("id", ""),
            type=data.get("type", "Security Issue"),
            severity=data.get("severity", "medium"),
            confidence_score=float(data.get("confidence_score", 0.5)),
            evidence=list(data.get("evidence", [])),
            location=Location(location["file"], location.get("line")) if location else None,
            risk_categories=list(data.get("risk_categories", [])),
            compliance_violations=list(data.get("compliance_violations", [])),
            description=data.get("description", ""),
            reviewer_id=data.get("reviewer_id"),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass
class ReviewerOutcome:
    """What one reviewer produced for one audit. Never raised, always returned."""
    reviewer_id: str
    findings: List[Finding] = field(default_factory=list)
    error: Optional[str] = None
    used_fallback: bool = False
    attempts: int = 0
    latency_ms: int = 0
    compute_cost: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reviewer_id": self.reviewer_id,
            "findings": [f.to_dict() for f in self.findings],
            "error": self.error,
            "used_fallback": self.used_fallback,
            "attempts": self.attempts,
            "latency_ms": self.latency_ms,
            "compute_cost": self.compute_cost,
        }


@dataclass
class HumanTask:
    """A request for human review of one merged finding."""
    id: str
    type: Literal["review", "approval", "correction", "escalation"]
    priority: Severity
    title: str
    description: str
    finding_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: Literal["pending", "assigned", "in_progress", "completed", "cancelled"] = "pending"
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "finding_id": self.finding_id,
            "metadata": dict(self.metadata),
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class AuditSession:
    """Mutable record of one audit's lifecycle, owned by the orchestrator."""
    id: str
    project_id: str
    status: SessionStatus = "in_progress"
    findings: List[Finding] = field(default_factory=list)
    human_tasks: List[HumanTask] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "status": self.status,
            "findings": [f.to_dict() for f in self.findings],
            "human_tasks": [t.to_dict() for t in self.human_tasks],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "metadata": self.metadata,
        }


def summarize_findings(findings: List[Finding]) -> Dict[str, int]:
    """Count findings per severity."""
    summary = {level: 0 for level in SEVERITY_LEVELS}
    for finding in findings:
        summary[finding.severity] = summary.get(finding.severity, 0) + 1
    summary["total_findings"] = len(findings)
    return summary


@dataclass
class AuditResult:
    """What a completed audit returns to the caller."""
    session_id: str
    project_id: str
    findings: List[Finding]
    consensus_score: float
    summary: Dict[str, int]
    reviewers_used: List[str] = field(default_factory=list)
    failed_reviewers: List[str] = field(default_factory=list)
    human_review_required: bool = False
    human_tasks: List[HumanTask] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "session_id": self.session_id,
            "project_id": self.project_id,
            "findings": [f.to_dict() for f in self.findings],
            "consensus_score": self.consensus_score,
            "summary": dict(self.summary),
            "reviewers_used": list(self.reviewers_used),
            "failed_reviewers": list(self.failed_reviewers),
            "human_review_required": self.human_review_required,
            "human_tasks": [t.to_dict() for t in self.human_tasks],
        }


class AuditMetrics:
    """Running counters across audits. Only ever moves forward."""

    def __init__(self):
        self.total_audits = 0
        self.successful_audits = 0
        self.failed_audits = 0
        self.total_findings = 0
        self.average_consensus_score = 0.0
        self.total_compute_cost = 0.0
        self.lock = threading.Lock()

    def record_started(self) -> None:
        with self.lock:
            self.total_audits += 1

    def record_success(self, consensus_score: float, findings_count: int, compute_cost: float) -> None:
        with self.lock:
            self.successful_audits += 1
            self.total_findings += findings_count
            self.total_compute_cost += compute_cost
            # Incremental mean over successful audits
            self.average_consensus_score += (
                consensus_score - self.average_consensus_score
            ) / self.successful_audits

    def record_failure(self, compute_cost: float = 0.0) -> None:
        with self.lock:
            self.failed_audits += 1
            self.total_compute_cost += compute_cost

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "total_audits": self.total_audits,
                "successful_audits": self.successful_audits,
                "failed_audits": self.failed_audits,
                "total_findings": self.total_findings,
                "average_consensus_score": self.average_consensus_score,
                "total_compute_cost": self.total_compute_cost,
            }
