"""Typed errors surfaced by the audit engine."""

from datetime import datetime
from typing import Any, Dict, List, Optional


class AuditError(Exception):
    """Base class for all engine errors."""

    code: str = "AUDIT_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.utcnow().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "code": self.code,
            "error": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp,
        }


class ValidationError(AuditError):
    """Request shape is invalid. Never retried."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, {**(context or {}), "field": field})
        self.field = field


class RateLimitError(AuditError):
    """Admission denied; retry after ``retry_after_ms``."""

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, retry_after_ms: int, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Rate limit exceeded, retry after {retry_after_ms}ms",
            {**(context or {}), "retry_after_ms": retry_after_ms},
        )
        self.retry_after_ms = retry_after_ms


class ReviewerError(AuditError):
    """A single reviewer failed. Recovered inside the invoker."""

    code = "REVIEWER_ERROR"

    def __init__(self, reviewer_id: str, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, {**(context or {}), "reviewer_id": reviewer_id})
        self.reviewer_id = reviewer_id


class AllReviewersFailedError(AuditError):
    """No reviewer produced usable output."""

    code = "ALL_REVIEWERS_FAILED"

    def __init__(
        self,
        project_id: str,
        failures: Dict[str, str],
        session_id: Optional[str] = None,
    ):
        super().__init__(
            f"No usable reviewer output for project '{project_id}' "
            f"({len(failures)} reviewer(s) failed)",
            {"project_id": project_id, "session_id": session_id, "failures": failures},
        )
        self.project_id = project_id
        self.failures = failures
        self.session_id = session_id


class AuditTimeoutError(AuditError):
    """The whole audit exceeded its time budget."""

    code = "TIMEOUT"

    def __init__(
        self,
        project_id: str,
        timeout_ms: int,
        session_id: Optional[str] = None,
        pending_reviewers: Optional[List[str]] = None,
    ):
        super().__init__(
            f"Audit for project '{project_id}' timed out after {timeout_ms}ms",
            {
                "project_id": project_id,
                "session_id": session_id,
                "timeout_ms": timeout_ms,
                "pending_reviewers": pending_reviewers or [],
            },
        )
        self.project_id = project_id
        self.timeout_ms = timeout_ms
        self.session_id = session_id
        self.pending_reviewers = list(pending_reviewers or [])


class NotFoundError(AuditError):
    """Lookup on an unknown identifier."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = (
            f"{resource} with identifier '{identifier}' not found"
            if identifier
            else f"{resource} not found"
        )
        super().__init__(message, {"resource": resource, "identifier": identifier})
        self.resource = resource
        self.identifier = identifier
