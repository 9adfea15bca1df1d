"""Interface of the model-call capability reviewers run through."""

from abc import ABC, abstractmethod
from typing import Any, Dict

from nullaudit.schema import AuditRequest, ModelCallResponse


def build_call_payload(request: AuditRequest) -> Dict[str, Any]:
    """Wire payload for one reviewer call."""
    return {
        "code": request.codebase,
        "language": request.language,
        "targets": list(request.targets),
        "options": {
            "depth": request.options.depth,
            "focus_areas": list(request.options.focus_areas),
            "blockchain": request.blockchain,
        },
    }


class ModelCaller(ABC):
    """
    Abstract model-call capability.

    Implementations raise ``RetryableError`` subclasses for network,
    timeout and 5xx failures; any other exception is treated as final.
    """

    @abstractmethod
    async def call(self, reviewer_id: str, payload: Dict[str, Any]) -> ModelCallResponse:
        """Run one reviewer's analysis on ``payload``."""

    async def close(self) -> None:
        """Release transport resources."""
