"""
Exception taxonomy for the interview system.

Everything raised below the engine derives from InterviewError so the engine
can convert component failures into fault events at a single boundary.
"""


class InterviewError(Exception):
    """Base class for all interview system errors."""
    kind = "interview"


class EngineStateError(InterviewError):
    """An engine operation was requested from a state that does not allow it."""
    kind = "engine-state"


class ConcurrentListenError(InterviewError):
    """listen() was called while a listen attempt was still outstanding."""
    kind = "concurrent-listen"


class CaptureError(InterviewError):
    """Speech capture failed."""
    kind = "capture"


class CaptureCancelledError(CaptureError):
    """The pending listen attempt was stopped before it resolved."""
    kind = "capture-cancelled"


class RenderError(InterviewError):
    """Speech synthesis or playback failed."""
    kind = "render"


class RenderCancelledError(RenderError):
    """Playback was stopped or superseded by a newer speak() call."""
    kind = "render-cancelled"


class PolicyError(InterviewError):
    """The dialogue policy service could not produce an utterance."""
    kind = "policy"


class PolicyUnavailableError(PolicyError):
    """Network or service fault talking to the dialogue policy service."""
    kind = "unavailable"


class PolicyInvalidInputError(PolicyError):
    """The request sent to the dialogue policy service was rejected."""
    kind = "invalid-input"


class TranscriptStoreError(InterviewError):
    """The durable transcript side-channel could not be read or written."""
    kind = "transcript-store"


class SessionFinalizationError(InterviewError):
    """Finalizing the session transcript failed after the conversation ended."""
    kind = "finalization"
