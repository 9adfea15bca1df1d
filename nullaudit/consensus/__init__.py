"""Consensus engine for merging findings from multiple reviewers."""

from nullaudit.consensus.engine import (
    ConsensusEngine,
    ConsensusResult,
    ReviewerWeights,
    group_identity,
    group_key,
)

__all__ = [
    "ConsensusEngine",
    "ConsensusResult",
    "ReviewerWeights",
    "group_identity",
    "group_key",
]
