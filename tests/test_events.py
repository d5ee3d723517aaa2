"""
Event System Tests

Tests for InterviewEventBus, EventLogger and InterviewMetrics.
"""
import logging

from turnkeeper.interview.events import (
    InterviewEventBus, EventLogger, InterviewMetrics, EventType,
    SessionStartedEvent, StateChangedEvent, UtteranceEvent, FaultEvent, SessionFinishedEvent
)


class TestInterviewEventBus:
    """Test subscription and dispatch."""

    def test_typed_and_global_handlers(self):
        bus = InterviewEventBus()
        typed, everything = [], []
        bus.subscribe(EventType.STATE_CHANGED, typed.append)
        bus.subscribe_all(everything.append)

        bus.emit(StateChangedEvent("s1", 1.0, "idle", "greeting"))
        bus.emit(UtteranceEvent("s1", 2.0, "system", "Hello"))

        assert [e.state for e in typed] == ["greeting"]
        assert [e.event_type for e in everything] == [EventType.STATE_CHANGED, EventType.UTTERANCE]

    def test_handlers_run_in_subscription_order(self):
        bus = InterviewEventBus()
        calls = []
        bus.subscribe(EventType.FAULT, lambda e: calls.append("first"))
        bus.subscribe(EventType.FAULT, lambda e: calls.append("second"))

        bus.emit(FaultEvent("s1", 1.0, "capture", "mic gone", "awaiting_human", 1))

        assert calls == ["first", "second"]

    def test_handler_exception_is_isolated(self, caplog):
        bus = InterviewEventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")
        bus.subscribe(EventType.UTTERANCE, broken)
        bus.subscribe(EventType.UTTERANCE, received.append)

        with caplog.at_level(logging.ERROR, logger="events"):
            bus.emit(UtteranceEvent("s1", 1.0, "human", "hi"))

        assert len(received) == 1
        assert "boom" in caplog.text

    def test_unsubscribe_and_clear(self):
        bus = InterviewEventBus()
        received = []
        bus.subscribe(EventType.UTTERANCE, received.append)
        bus.unsubscribe(EventType.UTTERANCE, received.append)
        bus.unsubscribe(EventType.UTTERANCE, received.append)
        bus.subscribe_all(received.append)
        bus.clear_handlers()

        bus.emit(UtteranceEvent("s1", 1.0, "human", "hi"))

        assert received == []


class TestEventPayloads:
    """Test event data shapes."""

    def test_fault_event_payload(self):
        event = FaultEvent("s1", 1.0, "unavailable", "timeout", "dispatching", 2, recoverable=True)
        assert event.data == {
            "kind": "unavailable",
            "message": "timeout",
            "state": "dispatching",
            "attempt": 2,
            "recoverable": True,
        }

    def test_event_logger_logs_events(self, caplog):
        with caplog.at_level(logging.INFO, logger="event_logger"):
            EventLogger().handle_event(SessionStartedEvent("s1", 1.0, 1, 8))
        assert "session_started" in caplog.text


class TestInterviewMetrics:
    """Test metric aggregation."""

    def test_counts_and_reset(self):
        metrics = InterviewMetrics()
        for event in [
            SessionStartedEvent("s1", 0.0, 1, 2),
            UtteranceEvent("s1", 1.0, "system", "Hello"),
            StateChangedEvent("s1", 2.0, "awaiting_human", "silence_pending"),
            UtteranceEvent("s1", 3.0, "human", "Hi"),
            FaultEvent("s1", 4.0, "render", "busy", "rendering", 1),
            SessionFinishedEvent("s1", 5.0, "retries_exhausted", True, 2, 1),
        ]:
            metrics.handle_event(event)

        assert metrics.get_metrics() == {
            "sessions_started": 1,
            "sessions_finished": 1,
            "sessions_degraded": 1,
            "human_turns": 1,
            "system_turns": 1,
            "silences": 1,
            "faults": 1,
        }

        metrics.reset()
        assert set(metrics.get_metrics().values()) == {0}
