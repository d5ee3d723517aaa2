"""Interview system components.

This module contains the business logic for running a spoken interview:
the turn-taking engine, its speech ports, the dialogue policy client and the
event surface.
"""

# Core engine
from .engine import TurnTakingEngine, SessionRegistry

# Data models
from .models import Turn, Speaker, Session, InterviewContext, UtteranceResult, VoiceOptions, EngineResult

# States and wire contract
from .schemas import EngineState, SilenceArmPolicy, EndReason, PolicyRequest, PolicyResponse

# Errors
from .errors import (
    InterviewError, EngineStateError, ConcurrentListenError,
    CaptureError, CaptureCancelledError, RenderError, RenderCancelledError,
    PolicyError, PolicyUnavailableError, PolicyInvalidInputError,
    TranscriptStoreError, SessionFinalizationError
)

# Ports
from .services import SpeechStream, RenderBackend, SilenceWatch, SpeechCapturePort, SpeechRenderPort

# Dialogue policy
from .decision_engine import DialoguePolicyClient, PromptEngine

# Event system
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics,
    EventType, InterviewEvent, SessionStartedEvent, StateChangedEvent,
    UtteranceEvent, FaultEvent, SessionFinishedEvent
)

__all__ = [
    # Engine
    "TurnTakingEngine", "SessionRegistry",

    # Data models
    "Turn", "Speaker", "Session", "InterviewContext", "UtteranceResult",
    "VoiceOptions", "EngineResult",

    # States and wire contract
    "EngineState", "SilenceArmPolicy", "EndReason", "PolicyRequest", "PolicyResponse",

    # Errors
    "InterviewError", "EngineStateError", "ConcurrentListenError",
    "CaptureError", "CaptureCancelledError", "RenderError", "RenderCancelledError",
    "PolicyError", "PolicyUnavailableError", "PolicyInvalidInputError",
    "TranscriptStoreError", "SessionFinalizationError",

    # Ports
    "SpeechStream", "RenderBackend", "SilenceWatch", "SpeechCapturePort", "SpeechRenderPort",

    # Dialogue policy
    "DialoguePolicyClient", "PromptEngine",

    # Events
    "InterviewEventBus", "EventLogger", "InterviewMetrics",
    "EventType", "InterviewEvent", "SessionStartedEvent", "StateChangedEvent",
    "UtteranceEvent", "FaultEvent", "SessionFinishedEvent",
]
