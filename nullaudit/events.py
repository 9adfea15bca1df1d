"""Event broadcasting for audit execution.

A lightweight observation side channel: lifecycle, per-reviewer and
progress events. Nothing in the engine depends on a subscriber being
present, and a failing subscriber never affects the audit.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
import json
import logging

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events emitted during an audit."""

    # Audit events
    AUDIT_STARTED = "audit_started"
    AUDIT_COMPLETED = "audit_completed"
    AUDIT_FAILED = "audit_failed"
    CACHE_HIT = "cache_hit"

    # Reviewer events
    REVIEWER_STARTED = "reviewer_started"
    REVIEWER_COMPLETED = "reviewer_completed"
    REVIEWER_FAILED = "reviewer_failed"

    # Finding events
    FINDINGS_MERGED = "findings_merged"

    # Progress events
    PROGRESS_UPDATE = "progress_update"

    WARNING = "warning"


class ProgressPhase(str, Enum):
    VALIDATING = "validating"
    ADMITTING = "admitting"
    ANALYZING = "analyzing"
    MERGING = "merging"
    DONE = "done"


@dataclass
class Event:
    """Base event class."""

    type: EventType
    audit_id: str
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "type": self.type.value,
            "audit_id": self.audit_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }

    def to_json(self) -> str:
        """Convert event to JSON string."""
        return json.dumps(self.to_dict())


class EventBus:
    """Publish/subscribe hub owned by one orchestrator.

    Supports:
    - Multiple subscribers per event type
    - Wildcard subscriptions (all events)
    - Bounded history for later inspection
    """

    def __init__(self, max_history: int = 1000):
        """Initialize event bus."""
        self._subscribers: Dict[EventType, List[Callable[[Event], None]]] = {}
        self._wildcard_subscribers: List[Callable[[Event], None]] = []
        self._event_history: List[Event] = []
        self._max_history = max_history

    def subscribe(self, event_type: Optional[EventType], callback: Callable[[Event], None]):
        """
        Subscribe to events.

        Args:
            event_type: Type of event to subscribe to, or None for all events
            callback: Function to call when event is published
        """
        if event_type is None:
            self._wildcard_subscribers.append(callback)
        else:
            self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: Optional[EventType], callback: Callable[[Event], None]):
        if event_type is None:
            if callback in self._wildcard_subscribers:
                self._wildcard_subscribers.remove(callback)
        elif callback in self._subscribers.get(event_type, []):
            self._subscribers[event_type].remove(callback)

    def publish(self, event: Event):
        """
        Publish event to all subscribers.

        Args:
            event: Event to publish
        """
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history.pop(0)

        logger.debug(f"Event published: {event.type.value} for audit {event.audit_id}")

        for callback in self._wildcard_subscribers + self._subscribers.get(event.type, []):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in event callback for {event.type.value}: {e}")

    def get_history(self, audit_id: Optional[str] = None, event_type: Optional[EventType] = None) -> List[Event]:
        """
        Get event history.

        Args:
            audit_id: Filter by audit ID (optional)
            event_type: Filter by event type (optional)

        Returns:
            List of events matching filters
        """
        events = self._event_history

        if audit_id:
            events = [e for e in events if e.audit_id == audit_id]

        if event_type:
            events = [e for e in events if e.type == event_type]

        return events

    def clear_history(self, audit_id: Optional[str] = None):
        if audit_id:
            self._event_history = [e for e in self._event_history if e.audit_id != audit_id]
        else:
            self._event_history.clear()


class EventEmitter:
    """Emits events for one audit; keeps reported progress monotonic."""

    def __init__(self, audit_id: str, event_bus: EventBus):
        self.audit_id = audit_id
        self.event_bus = event_bus
        self._progress_pct = 0.0

    def emit(self, event_type: EventType, data: Optional[Dict[str, Any]] = None):
        self.event_bus.publish(Event(type=event_type, audit_id=self.audit_id, data=data or {}))

    def progress(self, phase: ProgressPhase, progress_pct: float, message: str = ""):
        """Emit progress update; a value below the last one reported is raised to it."""
        self._progress_pct = max(self._progress_pct, min(100.0, progress_pct))
        self.emit(EventType.PROGRESS_UPDATE, {
            "phase": phase.value,
            "progress_pct": round(self._progress_pct, 2),
            "message": message,
        })

    def audit_started(self, project_id: str, reviewers: List[str]):
        self.emit(EventType.AUDIT_STARTED, {
            "project_id": project_id,
            "reviewers": list(reviewers),
        })

    def audit_completed(self, total_findings: int, consensus_score: float, duration_ms: int):
        self.emit(EventType.AUDIT_COMPLETED, {
            "total_findings": total_findings,
            "consensus_score": consensus_score,
            "duration_ms": duration_ms,
        })

    def audit_failed(self, error: str, code: str):
        self.emit(EventType.AUDIT_FAILED, {"error": error, "code": code})

    def cache_hit(self, cache_key: str, session_id: str):
        self.emit(EventType.CACHE_HIT, {"cache_key": cache_key, "session_id": session_id})

    def reviewer_started(self, reviewer_id: str):
        self.emit(EventType.REVIEWER_STARTED, {"reviewer_id": reviewer_id})

    def reviewer_completed(self, reviewer_id: str, findings_count: int, latency_ms: int, used_fallback: bool):
        self.emit(EventType.REVIEWER_COMPLETED, {
            "reviewer_id": reviewer_id,
            "findings_count": findings_count,
            "latency_ms": latency_ms,
            "used_fallback": used_fallback,
        })

    def reviewer_failed(self, reviewer_id: str, error: str):
        self.emit(EventType.REVIEWER_FAILED, {"reviewer_id": reviewer_id, "error": error})

    def findings_merged(self, consensus_enabled: bool, total_findings: int, consensus_score: float):
        self.emit(EventType.FINDINGS_MERGED, {
            "consensus_enabled": consensus_enabled,
            "total_findings": total_findings,
            "consensus_score": consensus_score,
        })

    def warning(self, warning_message: str, context: Optional[Dict[str, Any]] = None):
        self.emit(EventType.WARNING, {
            "warning": warning_message,
            "context": context or {},
        })
