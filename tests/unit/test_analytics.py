"""Tests for analytics events, sinks and the recorder."""

from __future__ import annotations

import json
import re

import pytest
from aioresponses import aioresponses

from formknobs.analytics import (
    AnalyticsEvent,
    AnalyticsEventType,
    AnalyticsRecorder,
    AnalyticsSink,
    HTTPAnalyticsSink,
    InMemoryAnalyticsSink,
    generate_session_id,
)
from formknobs.exceptions import NetworkError

ENDPOINT = "https://analytics.test/api/analytics/wizard"


class BrokenSink:
    def __init__(self) -> None:
        self.attempts = 0
        self.closed = False

    async def send(self, events):
        self.attempts += 1
        raise NetworkError("analytics down")

    async def close(self) -> None:
        self.closed = True


class TestAnalyticsEvent:
    """Tests for event records."""

    def test_session_id_format(self) -> None:
        assert re.fullmatch(r"wizard_\d+_[0-9a-f]{10}", generate_session_id())

    def test_to_dict_round_trip(self) -> None:
        event = AnalyticsEvent(
            event_type=AnalyticsEventType.STEP_COMPLETED,
            session_id="s1",
            user_id="u1",
            step_id="pricing",
            data={"timeSpent": 1200},
        )
        data = event.to_dict()

        assert data["eventType"] == "step_completed"
        assert data["sessionId"] == "s1"
        assert data["stepId"] == "pricing"
        assert AnalyticsEvent.from_dict(data) == event

    def test_ids_are_unique(self) -> None:
        a = AnalyticsEvent(AnalyticsEventType.STEP_STARTED, "s1")
        b = AnalyticsEvent(AnalyticsEventType.STEP_STARTED, "s1")
        assert a.id != b.id


class TestAnalyticsRecorder:
    """Tests for AnalyticsRecorder."""

    def test_buffers_without_sink(self) -> None:
        recorder = AnalyticsRecorder(session_id="s1", user_id="u1")
        event = recorder.track_step_started("location")

        assert event is not None
        assert event.session_id == "s1"
        assert event.user_id == "u1"
        assert event.step_id == "location"
        assert recorder.events == [event]

    def test_disabled_recorder_is_a_no_op(self) -> None:
        recorder = AnalyticsRecorder(enabled=False)
        assert recorder.track_step_started("location") is None
        assert recorder.events == []
        recorder.set_enabled(True)
        assert recorder.track_step_started("location") is not None

    def test_tracking_without_event_loop_keeps_events_pending(self) -> None:
        sink = InMemoryAnalyticsSink()
        recorder = AnalyticsRecorder(sink=sink)
        recorder.track_wizard_completed()
        assert len(recorder.events) == 1
        assert sink.events == []

    def test_wrapper_payloads(self) -> None:
        recorder = AnalyticsRecorder()
        completed = recorder.track_step_completion("pricing", time_spent_ms=5400)
        failed = recorder.track_validation_failure("pricing", {"price": "x", "currency": "y"})
        navigation = recorder.track_navigation("pricing", "media", False)
        saved = recorder.track_draft_saved("d1", "client_cache", "pricing")
        error = recorder.track_error(ValueError("bad"), {"step": "pricing"})

        assert completed.data == {"timeSpent": 5400}
        assert failed.data == {"fields": ["currency", "price"], "errorCount": 2}
        assert navigation.data == {"from": "pricing", "to": "media", "allowed": False}
        assert saved.data == {"draftId": "d1", "tier": "client_cache"}
        assert error.data["errorName"] == "ValueError"
        assert error.data["errorMessage"] == "bad"
        assert error.step_id == "pricing"

    def test_performance_metric_units(self) -> None:
        recorder = AnalyticsRecorder()
        event = recorder.track_performance_metric("render", 12.5, "ms")
        assert event.data["metricName"] == "render"

    def test_unknown_metric_unit_is_dropped(self, caplog) -> None:
        recorder = AnalyticsRecorder()

        with caplog.at_level("WARNING", logger="formknobs.analytics.recorder"):
            assert recorder.track_performance_metric("render", 1, "minutes") is None

        assert recorder.events == []
        assert "unknown unit" in caplog.text

    def test_session_summary(self) -> None:
        recorder = AnalyticsRecorder(session_id="s1", user_id="u1")
        recorder.track_step_started("basic_info")
        recorder.track_step_completion("basic_info")
        recorder.track_validation_failure("location", {"address": "required"})
        recorder.track_draft_saved("d1", "server")
        recorder.track_ai_generation("description", success=True, model="m", response_time_ms=800)
        recorder.track_ai_generation("description", success=False)
        recorder.track_upload(True, 2048, "image/jpeg", upload_time_ms=120)
        recorder.track_error(RuntimeError("x"))
        recorder.track_wizard_completed()

        summary = recorder.get_session_summary()

        assert summary.session_id == "s1"
        assert summary.total_events == 9
        assert summary.steps_started == 1
        assert summary.steps_completed == 1
        assert summary.validation_failures == 1
        assert summary.drafts_saved == 1
        assert summary.ai_generations_attempted == 2
        assert summary.ai_generations_successful == 1
        assert summary.uploads_attempted == 1
        assert summary.uploads_successful == 1
        assert summary.errors == 1
        assert summary.completed is True
        assert summary.abandoned is False
        assert summary.session_duration_ms >= 0
        assert summary.to_dict()["total_events"] == 9

    def test_get_events_filters_by_type(self) -> None:
        recorder = AnalyticsRecorder()
        recorder.track_step_started("a")
        recorder.track_step_started("b")
        recorder.track_wizard_abandoned("b")
        assert len(recorder.get_events(AnalyticsEventType.STEP_STARTED)) == 2
        assert len(recorder.get_events()) == 3

    def test_export_and_clear(self) -> None:
        recorder = AnalyticsRecorder(session_id="s1")
        recorder.track_step_started("a")
        exported = json.loads(recorder.export_events())
        assert exported[0]["eventType"] == "step_started"
        recorder.clear_events()
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_delivers_to_sink(self) -> None:
        sink = InMemoryAnalyticsSink()
        recorder = AnalyticsRecorder.create(sink=sink, user_id="u1")
        recorder.track_step_started("basic_info")
        recorder.track_step_completion("basic_info", 100)

        await recorder.flush()

        assert [e.event_type for e in sink.events] == [
            AnalyticsEventType.STEP_STARTED,
            AnalyticsEventType.STEP_COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_batching(self) -> None:
        sink = InMemoryAnalyticsSink()
        recorder = AnalyticsRecorder(sink=sink, batch_size=3)
        for step in ("a", "b"):
            recorder.track_step_started(step)
        await recorder.flush()
        recorder.track_step_started("c")
        recorder.track_step_started("d")
        recorder.track_step_started("e")
        await recorder.flush()

        assert [len(batch) for batch in sink.batches] == [2, 3]

    @pytest.mark.asyncio
    async def test_sink_failures_are_swallowed(self) -> None:
        sink = BrokenSink()
        recorder = AnalyticsRecorder(sink=sink)

        assert recorder.track_step_started("a") is not None
        await recorder.flush()

        assert sink.attempts == 1
        assert len(recorder.events) == 1

    @pytest.mark.asyncio
    async def test_dispose_closes_sink_and_disables(self) -> None:
        sink = BrokenSink()
        recorder = AnalyticsRecorder(sink=sink)
        await recorder.dispose()

        assert sink.closed
        assert not recorder.enabled
        assert recorder.track_step_started("a") is None
        await recorder.dispose()


class TestSinks:
    """Tests for the sink implementations."""

    def test_protocol(self) -> None:
        assert isinstance(InMemoryAnalyticsSink(), AnalyticsSink)
        assert isinstance(HTTPAnalyticsSink(ENDPOINT), AnalyticsSink)

    @pytest.mark.asyncio
    async def test_http_sink_posts_each_event(self) -> None:
        sink = HTTPAnalyticsSink.from_config({"endpoint": ENDPOINT, "auth_token": "t"})
        events = [
            AnalyticsEvent(AnalyticsEventType.STEP_STARTED, "s1", step_id="a"),
            AnalyticsEvent(AnalyticsEventType.STEP_COMPLETED, "s1", step_id="a"),
        ]
        with aioresponses() as m:
            m.post(ENDPOINT, status=200, repeat=True)
            await sink.send(events)
            sent = [call for key, calls in m.requests.items() for call in calls]
        await sink.close()

        assert len(sent) == 2
        assert sent[0].kwargs["json"]["eventType"] == "step_started"

    @pytest.mark.asyncio
    async def test_http_sink_error_status(self) -> None:
        sink = HTTPAnalyticsSink(ENDPOINT)
        with aioresponses() as m:
            m.post(ENDPOINT, status=500)
            with pytest.raises(NetworkError) as excinfo:
                await sink.send([AnalyticsEvent(AnalyticsEventType.STEP_STARTED, "s1")])
        await sink.close()
        assert excinfo.value.context["status"] == 500

    @pytest.mark.asyncio
    async def test_recorder_drops_failed_http_delivery(self) -> None:
        sink = HTTPAnalyticsSink(ENDPOINT)
        recorder = AnalyticsRecorder(sink=sink)
        with aioresponses() as m:
            m.post(ENDPOINT, status=503)
            recorder.track_step_started("a")
            await recorder.flush()
        await recorder.dispose()
        assert len(recorder.events) == 1
