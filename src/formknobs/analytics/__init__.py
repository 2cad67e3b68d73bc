"""Wizard analytics: event types, sinks and the per-session recorder."""

from formknobs.analytics.events import (
    AnalyticsEvent,
    AnalyticsEventType,
    SessionSummary,
    generate_session_id,
)
from formknobs.analytics.recorder import AnalyticsRecorder
from formknobs.analytics.sinks import (
    AnalyticsSink,
    HTTPAnalyticsSink,
    InMemoryAnalyticsSink,
)

__all__ = [
    "AnalyticsEvent",
    "AnalyticsEventType",
    "AnalyticsRecorder",
    "AnalyticsSink",
    "HTTPAnalyticsSink",
    "InMemoryAnalyticsSink",
    "SessionSummary",
    "generate_session_id",
]
