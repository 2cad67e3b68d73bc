"""Analytics event types and records."""

from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AnalyticsEventType(str, Enum):
    """Kinds of wizard telemetry."""

    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_VALIDATION_FAILED = "step_validation_failed"
    WIZARD_COMPLETED = "wizard_completed"
    WIZARD_ABANDONED = "wizard_abandoned"

    AI_GENERATION_REQUESTED = "ai_generation_requested"
    AI_GENERATION_SUCCESS = "ai_generation_success"
    AI_GENERATION_FAILED = "ai_generation_failed"
    AI_GENERATION_RETRY = "ai_generation_retry"

    UPLOAD_STARTED = "upload_started"
    UPLOAD_SUCCESS = "upload_success"
    UPLOAD_FAILED = "upload_failed"
    UPLOAD_PROGRESS = "upload_progress"

    FIELD_FOCUSED = "field_focused"
    FIELD_CHANGED = "field_changed"
    NAVIGATION_ATTEMPTED = "navigation_attempted"
    DRAFT_SAVED = "draft_saved"
    DRAFT_LOADED = "draft_loaded"

    PERFORMANCE_METRIC = "performance_metric"
    ERROR_OCCURRED = "error_occurred"

    EXTERNAL_SERVICE_CALL = "external_service_call"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


def generate_session_id() -> str:
    """Random per-recorder session id, e.g. ``wizard_1718000000000_3f9a1c2b7d``."""
    return f"wizard_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


@dataclass(frozen=True)
class AnalyticsEvent:
    """One telemetry record.

    Attributes:
        event_type: What happened
        session_id: Recorder session the event belongs to
        user_id: User, when known
        step_id: Step the event relates to, when any
        data: Event-specific payload
        id: Unique event id
        timestamp: When the event was recorded (UTC)
    """

    event_type: AnalyticsEventType
    session_id: str
    user_id: str | None = None
    step_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "userId": self.user_id,
            "eventType": self.event_type.value,
            "stepId": self.step_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalyticsEvent:
        timestamp = data.get("timestamp")
        return cls(
            event_type=AnalyticsEventType(data["eventType"]),
            session_id=data["sessionId"],
            user_id=data.get("userId"),
            step_id=data.get("stepId"),
            data=dict(data.get("data") or {}),
            id=data.get("id") or str(uuid.uuid4()),
            timestamp=(
                datetime.fromisoformat(timestamp)
                if isinstance(timestamp, str)
                else datetime.now(timezone.utc)
            ),
        )


@dataclass
class SessionSummary:
    """Aggregate view of one recorder's buffered events."""

    session_id: str
    user_id: str | None
    total_events: int = 0
    steps_started: int = 0
    steps_completed: int = 0
    validation_failures: int = 0
    drafts_saved: int = 0
    ai_generations_attempted: int = 0
    ai_generations_successful: int = 0
    uploads_attempted: int = 0
    uploads_successful: int = 0
    errors: int = 0
    session_duration_ms: int = 0
    completed: bool = False
    abandoned: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
