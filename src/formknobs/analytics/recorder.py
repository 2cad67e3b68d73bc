"""Best-effort, non-blocking wizard telemetry.

:class:`AnalyticsRecorder` appends every event to an in-memory buffer
synchronously and hands batches to an :class:`AnalyticsSink` in
background tasks. Delivery failures are logged and dropped; tracking
never raises and never blocks the wizard. Recorders are created per
session and injected into the engine; there is no global instance.

Example:
    ```python
    recorder = AnalyticsRecorder.create(sink=InMemoryAnalyticsSink(), user_id="u1")
    recorder.track_step_started("location")
    recorder.track_step_completion("location", time_spent_ms=5400)
    summary = recorder.get_session_summary()
    await recorder.dispose()
    ```
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from formknobs.analytics.events import (
    AnalyticsEvent,
    AnalyticsEventType,
    SessionSummary,
    generate_session_id,
)
from formknobs.analytics.sinks import AnalyticsSink

logger = logging.getLogger(__name__)

_PERFORMANCE_UNITS = frozenset({"ms", "bytes", "count", "percentage"})


class AnalyticsRecorder:
    """Per-session event buffer with background delivery.

    Args:
        session_id: Session id; a random one is generated when omitted
        sink: Delivery target, or ``None`` to only buffer
        user_id: User the events belong to
        enabled: When false, tracking calls are no-ops
        batch_size: Events buffered before a delivery task is started
    """

    def __init__(
        self,
        session_id: str | None = None,
        sink: AnalyticsSink | None = None,
        user_id: str | None = None,
        enabled: bool = True,
        batch_size: int = 1,
    ) -> None:
        self._session_id = session_id or generate_session_id()
        self._sink = sink
        self._user_id = user_id
        self._enabled = enabled
        self._batch_size = max(1, batch_size)
        self._events: list[AnalyticsEvent] = []
        self._pending: list[AnalyticsEvent] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._disposed = False

    @classmethod
    def create(
        cls,
        session_id: str | None = None,
        sink: AnalyticsSink | None = None,
        user_id: str | None = None,
        enabled: bool = True,
        batch_size: int = 1,
    ) -> AnalyticsRecorder:
        """Create a recorder for a new wizard session."""
        recorder = cls(session_id, sink, user_id, enabled, batch_size)
        logger.debug("Analytics session %s started", recorder.session_id)
        return recorder

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def enabled(self) -> bool:
        return self._enabled and not self._disposed

    @property
    def events(self) -> list[AnalyticsEvent]:
        return list(self._events)

    def set_user_id(self, user_id: str | None) -> None:
        self._user_id = user_id

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def track_event(
        self,
        event_type: AnalyticsEventType,
        data: dict[str, Any] | None = None,
        step_id: str | None = None,
    ) -> AnalyticsEvent | None:
        """Record an event and schedule its delivery.

        Returns:
            The recorded event, or ``None`` when tracking is disabled
        """
        if not self.enabled:
            return None
        event = AnalyticsEvent(
            event_type=event_type,
            session_id=self._session_id,
            user_id=self._user_id,
            step_id=step_id,
            data=dict(data or {}),
        )
        self._events.append(event)
        if self._sink is not None:
            self._pending.append(event)
            if len(self._pending) >= self._batch_size:
                self._schedule_delivery()
        return event

    def track_step_started(self, step_id: str, **data: Any) -> AnalyticsEvent | None:
        return self.track_event(AnalyticsEventType.STEP_STARTED, data, step_id)

    def track_step_completion(
        self, step_id: str, time_spent_ms: float | None = None, **data: Any
    ) -> AnalyticsEvent | None:
        payload = dict(data)
        if time_spent_ms is not None:
            payload["timeSpent"] = time_spent_ms
        return self.track_event(AnalyticsEventType.STEP_COMPLETED, payload, step_id)

    def track_validation_failure(
        self, step_id: str, errors: dict[str, Any]
    ) -> AnalyticsEvent | None:
        return self.track_event(
            AnalyticsEventType.STEP_VALIDATION_FAILED,
            {"fields": sorted(errors), "errorCount": len(errors)},
            step_id,
        )

    def track_navigation(
        self, from_step: str, to_step: str, allowed: bool
    ) -> AnalyticsEvent | None:
        return self.track_event(
            AnalyticsEventType.NAVIGATION_ATTEMPTED,
            {"from": from_step, "to": to_step, "allowed": allowed},
            from_step,
        )

    def track_field_changed(self, step_id: str, fields: list[str]) -> AnalyticsEvent | None:
        return self.track_event(AnalyticsEventType.FIELD_CHANGED, {"fields": fields}, step_id)

    def track_draft_saved(
        self, draft_id: str, tier: str, step_id: str | None = None, **data: Any
    ) -> AnalyticsEvent | None:
        return self.track_event(
            AnalyticsEventType.DRAFT_SAVED, {"draftId": draft_id, "tier": tier, **data}, step_id
        )

    def track_draft_loaded(
        self, draft_id: str, step_id: str | None = None
    ) -> AnalyticsEvent | None:
        return self.track_event(AnalyticsEventType.DRAFT_LOADED, {"draftId": draft_id}, step_id)

    def track_wizard_completed(self, **data: Any) -> AnalyticsEvent | None:
        return self.track_event(AnalyticsEventType.WIZARD_COMPLETED, data)

    def track_wizard_abandoned(
        self, step_id: str | None = None, **data: Any
    ) -> AnalyticsEvent | None:
        return self.track_event(AnalyticsEventType.WIZARD_ABANDONED, data, step_id)

    def track_error(
        self, error: BaseException, context: dict[str, Any] | None = None
    ) -> AnalyticsEvent | None:
        payload = {
            "errorName": type(error).__name__,
            "errorMessage": str(error),
            **(context or {}),
        }
        step_id = payload.get("step") if isinstance(payload.get("step"), str) else None
        return self.track_event(AnalyticsEventType.ERROR_OCCURRED, payload, step_id)

    def track_performance_metric(
        self,
        metric_name: str,
        value: float,
        unit: str = "ms",
        context: dict[str, Any] | None = None,
    ) -> AnalyticsEvent | None:
        if unit not in _PERFORMANCE_UNITS:
            logger.warning(
                "Dropping metric %s with unknown unit %r, expected one of %s",
                metric_name, unit, sorted(_PERFORMANCE_UNITS),
            )
            return None
        return self.track_event(
            AnalyticsEventType.PERFORMANCE_METRIC,
            {"metricName": metric_name, "value": value, "unit": unit, "context": context or {}},
        )

    def track_ai_generation(
        self,
        generation_type: str,
        success: bool,
        model: str | None = None,
        response_time_ms: float | None = None,
        **metrics: Any,
    ) -> AnalyticsEvent | None:
        event_type = (
            AnalyticsEventType.AI_GENERATION_SUCCESS
            if success
            else AnalyticsEventType.AI_GENERATION_FAILED
        )
        return self.track_event(
            event_type,
            {
                "generationType": generation_type,
                "model": model,
                "responseTime": response_time_ms,
                **metrics,
            },
        )

    def track_upload(
        self,
        success: bool,
        file_size: int,
        file_type: str,
        upload_time_ms: float | None = None,
        error_type: str | None = None,
    ) -> AnalyticsEvent | None:
        event_type = AnalyticsEventType.UPLOAD_SUCCESS if success else AnalyticsEventType.UPLOAD_FAILED
        data: dict[str, Any] = {
            "fileSize": file_size,
            "fileType": file_type,
            "uploadTime": upload_time_ms,
        }
        if error_type:
            data["errorType"] = error_type
        return self.track_event(event_type, data)

    def track_external_service(
        self,
        service: str,
        success: bool,
        response_time_ms: float,
        error_type: str | None = None,
    ) -> AnalyticsEvent | None:
        event_type = (
            AnalyticsEventType.EXTERNAL_SERVICE_CALL
            if success
            else AnalyticsEventType.EXTERNAL_SERVICE_ERROR
        )
        return self.track_event(
            event_type,
            {"service": service, "responseTime": response_time_ms, "errorType": error_type},
        )

    def get_events(self, event_type: AnalyticsEventType | None = None) -> list[AnalyticsEvent]:
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.event_type is event_type]

    def get_session_summary(self) -> SessionSummary:
        """Aggregate the buffered events; the sink is never consulted."""
        counts: dict[AnalyticsEventType, int] = {}
        for event in self._events:
            counts[event.event_type] = counts.get(event.event_type, 0) + 1

        duration = 0
        if self._events:
            delta = self._events[-1].timestamp - self._events[0].timestamp
            duration = int(delta.total_seconds() * 1000)

        ai_success = counts.get(AnalyticsEventType.AI_GENERATION_SUCCESS, 0)
        ai_failed = counts.get(AnalyticsEventType.AI_GENERATION_FAILED, 0)
        uploads_ok = counts.get(AnalyticsEventType.UPLOAD_SUCCESS, 0)
        uploads_failed = counts.get(AnalyticsEventType.UPLOAD_FAILED, 0)
        return SessionSummary(
            session_id=self._session_id,
            user_id=self._user_id,
            total_events=len(self._events),
            steps_started=counts.get(AnalyticsEventType.STEP_STARTED, 0),
            steps_completed=counts.get(AnalyticsEventType.STEP_COMPLETED, 0),
            validation_failures=counts.get(AnalyticsEventType.STEP_VALIDATION_FAILED, 0),
            drafts_saved=counts.get(AnalyticsEventType.DRAFT_SAVED, 0),
            ai_generations_attempted=max(
                counts.get(AnalyticsEventType.AI_GENERATION_REQUESTED, 0), ai_success + ai_failed
            ),
            ai_generations_successful=ai_success,
            uploads_attempted=max(
                counts.get(AnalyticsEventType.UPLOAD_STARTED, 0), uploads_ok + uploads_failed
            ),
            uploads_successful=uploads_ok,
            errors=counts.get(AnalyticsEventType.ERROR_OCCURRED, 0),
            session_duration_ms=duration,
            completed=AnalyticsEventType.WIZARD_COMPLETED in counts,
            abandoned=AnalyticsEventType.WIZARD_ABANDONED in counts,
        )

    def clear_events(self) -> None:
        self._events.clear()
        self._pending.clear()

    def export_events(self) -> str:
        """All buffered events as a JSON array."""
        return json.dumps([e.to_dict() for e in self._events], indent=2)

    async def flush(self) -> None:
        """Deliver anything still pending and wait for in-flight deliveries."""
        if self._pending:
            self._schedule_delivery()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def dispose(self) -> None:
        """Flush, stop tracking and close the sink."""
        if self._disposed:
            return
        await self.flush()
        self._disposed = True
        if self._sink is not None:
            try:
                await self._sink.close()
            except Exception:
                logger.exception("Failed to close analytics sink")
        logger.debug("Analytics session %s disposed", self._session_id)

    def _schedule_delivery(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: keep events pending until the next flush.
            return
        batch, self._pending = self._pending, []
        task = loop.create_task(self._deliver(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, batch: list[AnalyticsEvent]) -> None:
        assert self._sink is not None
        try:
            await self._sink.send(batch)
        except Exception as e:
            logger.warning(
                "Dropped %d analytics events for session %s: %s",
                len(batch), self._session_id, e,
            )
