"""Consensus engine for merging findings from multiple reviewers."""
import dataclasses
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from nullaudit.config import DEFAULT_REVIEWER_WEIGHT, DEFAULT_REVIEWER_WEIGHTS
from nullaudit.data_models import Finding
from nullaudit.utils.helpers import clamp01

logger = logging.getLogger(__name__)

OUTLIER_STDDEV_THRESHOLD = 0.2
OUTLIER_PENALTY_FACTOR = 0.3

GroupIdentity = Tuple[str, str, Optional[int]]


@dataclass
class ConsensusResult:
    merged_findings: List[Finding] = field(default_factory=list)
    consensus_score: float = 0.0


@dataclass
class _GroupStats:
    weighted_confidence: float
    agreement_ratio: float
    outlier_penalty: float
    score: float


class ReviewerWeights:
    """Closed lookup of reviewer reliability weights with an explicit default."""

    def __init__(
        self,
        weights: Optional[Dict[str, float]] = None,
        default: float = DEFAULT_REVIEWER_WEIGHT,
    ):
        self._weights = dict(DEFAULT_REVIEWER_WEIGHTS if weights is None else weights)
        self.default = default
        for reviewer_id, weight in {**self._weights, "<default>": default}.items():
            if not 0.0 < weight <= 1.0:
                raise ValueError(f"Weight for reviewer '{reviewer_id}' must be in (0, 1], got {weight}")

    def get(self, reviewer_id: str) -> float:
        return self._weights.get(reviewer_id, self.default)

    def to_dict(self) -> Dict[str, float]:
        return dict(self._weights)


def group_identity(finding: Finding) -> GroupIdentity:
    """Identity of the underlying issue: (type, file, line)."""
    if finding.location is None:
        return (finding.type, "", None)
    return (finding.type, finding.location.file or "", finding.location.line)


def group_key(identity: GroupIdentity) -> str:
    """Display form of an identity, used for merged finding ids."""
    finding_type, file, line = identity
    line_text = "" if line is None else line
    return f"{finding_type}-{file}-{line_text}"


def _identity_order(identity: GroupIdentity) -> Tuple[str, str, int]:
    finding_type, file, line = identity
    return (finding_type, file, -1 if line is None else line)


def _population_stddev(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def _union(lists: Sequence[Sequence[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for items in lists:
        for item in items:
            seen.setdefault(item, None)
    return list(seen)


class ConsensusEngine:
    """Fuses per-reviewer findings into ranked, deduplicated consensus findings."""

    def __init__(self, weights: Optional[ReviewerWeights] = None):
        self.weights = weights or ReviewerWeights()

    def merge(
        self,
        reviewer_findings: Sequence[Sequence[Finding]],
        reviewer_ids: Sequence[str],
    ) -> ConsensusResult:
        """
        Merge findings from the reviewers that produced output.

        Args:
            reviewer_findings: One finding list per reviewer, aligned with ``reviewer_ids``
            reviewer_ids: Reviewers that actually ran

        Returns:
            ConsensusResult with merged findings ranked by score
        """
        if len(reviewer_findings) != len(reviewer_ids):
            raise ValueError(
                f"Got {len(reviewer_findings)} finding lists for {len(reviewer_ids)} reviewers"
            )
        if not reviewer_ids:
            return ConsensusResult()

        groups = self._group(reviewer_findings, reviewer_ids)
        total_reviewers = len(set(reviewer_ids))

        merged: List[Tuple[GroupIdentity, Finding]] = []
        for identity, members in groups.items():
            stats = self._score_group(members, total_reviewers)
            merged.append((identity, self._build_merged_finding(identity, members, stats, total_reviewers)))

        # Rank: score desc, then identity for a stable total order
        merged.sort(key=lambda item: (-item[1].confidence_score, _identity_order(item[0])))
        findings = [finding for _, finding in merged]
        overall = sum(f.confidence_score for f in findings) / len(findings) if findings else 0.0

        logger.debug(
            f"Merged {sum(len(f) for f in reviewer_findings)} findings from "
            f"{total_reviewers} reviewers into {len(findings)} groups (score={overall:.3f})"
        )
        return ConsensusResult(merged_findings=findings, consensus_score=overall)

    def _group(
        self,
        reviewer_findings: Sequence[Sequence[Finding]],
        reviewer_ids: Sequence[str],
    ) -> Dict[GroupIdentity, List[Tuple[str, Finding]]]:
        """Group by identity key, keeping one finding per reviewer (its most confident)."""
        groups: Dict[GroupIdentity, Dict[str, Finding]] = {}
        for reviewer_id, findings in zip(reviewer_ids, reviewer_findings):
            for finding in findings:
                members = groups.setdefault(group_identity(finding), {})
                existing = members.get(reviewer_id)
                if existing is None or finding.confidence_score > existing.confidence_score:
                    members[reviewer_id] = finding

        return {
            identity: sorted(members.items(), key=lambda item: item[0])
            for identity, members in sorted(groups.items(), key=lambda item: _identity_order(item[0]))
        }

    def _score_group(self, members: List[Tuple[str, Finding]], total_reviewers: int) -> _GroupStats:
        confidences = [f.confidence_score for _, f in members]
        weights = [self.weights.get(reviewer_id) for reviewer_id, _ in members]

        weighted_confidence = sum(c * w for c, w in zip(confidences, weights)) / sum(weights)
        agreement_ratio = min(1.0, len(members) / total_reviewers)

        sigma = _population_stddev(confidences)
        outlier_penalty = 0.0
        if sigma > OUTLIER_STDDEV_THRESHOLD:
            outlier_penalty = min(1.0, (sigma - OUTLIER_STDDEV_THRESHOLD) * OUTLIER_PENALTY_FACTOR)

        score = clamp01(weighted_confidence * agreement_ratio * (1 - outlier_penalty))
        return _GroupStats(weighted_confidence, agreement_ratio, outlier_penalty, score)

    def _pick_base(self, members: List[Tuple[str, Finding]]) -> Tuple[str, Finding]:
        # Highest confidence * weight; ties go to the lexicographically smallest reviewer id
        return min(
            members,
            key=lambda item: (-(item[1].confidence_score * self.weights.get(item[0])), item[0]),
        )

    def _vote_severity(self, members: List[Tuple[str, Finding]], base: Finding) -> str:
        counts = Counter(f.severity for _, f in members)
        top = max(counts.values())
        winners = [severity for severity, count in counts.items() if count == top]
        if len(winners) == 1:
            return winners[0]
        return base.severity

    def _build_merged_finding(
        self,
        identity: GroupIdentity,
        members: List[Tuple[str, Finding]],
        stats: _GroupStats,
        total_reviewers: int,
    ) -> Finding:
        base_reviewer, base = self._pick_base(members)
        ordered = [base] + [f for _, f in members if f is not base]

        return dataclasses.replace(
            base,
            id=f"consensus-{group_key(identity)}",
            confidence_score=stats.score,
            severity=self._vote_severity(members, base),
            evidence=_union([f.evidence for f in ordered]),
            risk_categories=_union([f.risk_categories for f in ordered]),
            compliance_violations=_union([f.compliance_violations for f in ordered]),
            reviewer_id=None,
            metadata={
                **base.metadata,
                "models_agreed": [reviewer_id for reviewer_id, _ in members],
                "total_models": total_reviewers,
                "agreement_ratio": stats.agreement_ratio,
                "outlier_penalty": stats.outlier_penalty,
                "weighted_confidence": stats.weighted_confidence,
                "base_reviewer": base_reviewer,
            },
        )
