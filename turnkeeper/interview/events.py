"""
Event-driven surface of the turn-taking engine.
"""
import logging
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of engine events."""
    SESSION_STARTED = "session_started"
    STATE_CHANGED = "state_changed"
    UTTERANCE = "utterance"
    FAULT = "fault"
    SESSION_FINISHED = "session_finished"


@dataclass
class InterviewEvent:
    """Base class for all engine events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


class SessionStartedEvent(InterviewEvent):
    """Event fired when start() spawns a new conversation."""
    def __init__(self, session_id: str, timestamp: float, generation: int, max_human_turns: int):
        super().__init__(
            event_type=EventType.SESSION_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"generation": generation, "max_human_turns": max_human_turns}
        )


class StateChangedEvent(InterviewEvent):
    """Event fired after every committed engine state transition."""
    def __init__(self, session_id: str, timestamp: float, previous: str, state: str):
        super().__init__(
            event_type=EventType.STATE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"previous": previous, "state": state}
        )

    @property
    def state(self) -> str:
        return self.data["state"]


class UtteranceEvent(InterviewEvent):
    """Event fired when either side's utterance becomes the current spoken text."""
    def __init__(self, session_id: str, timestamp: float, speaker: str, text: str):
        super().__init__(
            event_type=EventType.UTTERANCE,
            session_id=session_id,
            timestamp=timestamp,
            data={"speaker": speaker, "text": text}
        )


class FaultEvent(InterviewEvent):
    """Event fired when a component failure is absorbed by the engine."""
    def __init__(self, session_id: str, timestamp: float, kind: str, message: str,
                 state: str, attempt: int, recoverable: bool = True):
        super().__init__(
            event_type=EventType.FAULT,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "kind": kind,
                "message": message,
                "state": state,
                "attempt": attempt,
                "recoverable": recoverable
            }
        )


class SessionFinishedEvent(InterviewEvent):
    """Event fired once per run when the engine reaches the finished state."""
    def __init__(self, session_id: str, timestamp: float, end_reason: str,
                 degraded: bool, turn_count: int, human_turns: int):
        super().__init__(
            event_type=EventType.SESSION_FINISHED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "end_reason": end_reason,
                "degraded": degraded,
                "turn_count": turn_count,
                "human_turns": human_turns
            }
        )


EventHandler = Callable[[InterviewEvent], None]


class InterviewEventBus:
    """Synchronous event bus; handlers run in subscription order on the caller's loop."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from specific event type."""
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def emit(self, event: InterviewEvent) -> None:
        """
        Emit an event to all subscribers.

        Handler errors are logged and never reach the emitter.
        """
        logger.debug(f"Emitting event: {event.event_type} for session {event.session_id}")

        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")

    def clear_handlers(self) -> None:
        """Clear all event handlers."""
        self._handlers.clear()
        self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: InterviewEvent) -> None:
        """Log event details."""
        self.logger.info(f"Event: {event.event_type.value} | Session: {event.session_id} | Data: {event.data}")


class InterviewMetrics:
    """Collects metrics from engine events."""

    def __init__(self):
        self.reset()

    def handle_event(self, event: InterviewEvent) -> None:
        """Update metrics based on event."""
        if event.event_type == EventType.SESSION_STARTED:
            self.sessions_started += 1
        elif event.event_type == EventType.SESSION_FINISHED:
            self.sessions_finished += 1
            if event.data.get("degraded"):
                self.sessions_degraded += 1
        elif event.event_type == EventType.UTTERANCE:
            if event.data.get("speaker") == "human":
                self.human_turns += 1
            else:
                self.system_turns += 1
        elif event.event_type == EventType.STATE_CHANGED:
            if event.data.get("state") == "silence_pending":
                self.silences += 1
        elif event.event_type == EventType.FAULT:
            self.faults += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return {
            "sessions_started": self.sessions_started,
            "sessions_finished": self.sessions_finished,
            "sessions_degraded": self.sessions_degraded,
            "human_turns": self.human_turns,
            "system_turns": self.system_turns,
            "silences": self.silences,
            "faults": self.faults
        }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self.sessions_started = 0
        self.sessions_finished = 0
        self.sessions_degraded = 0
        self.human_turns = 0
        self.system_turns = 0
        self.silences = 0
        self.faults = 0
