"""
Speech ports used by the turn-taking engine.

The capture port turns a continuous speech-to-text stream into one
"next utterance" result per listen attempt; the render port turns text into
audible speech and reports when playback finishes.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from .errors import (
    CaptureError, CaptureCancelledError, ConcurrentListenError,
    RenderError, RenderCancelledError
)
from .models import UtteranceResult, VoiceOptions
from .schemas import SilenceArmPolicy

logger = logging.getLogger("capture_port")
render_logger = logging.getLogger("render_port")


FragmentCallback = Callable[[str, bool], None]
EndCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]


class SpeechStream(ABC):
    """
    Continuous speech-to-text source.

    Implementations report recognition fragments, the natural end of an
    utterance, and errors through the callbacks given to start(). Callbacks
    must be invoked on the event loop thread; thread-backed streams marshal
    them with loop.call_soon_threadsafe.
    """

    @abstractmethod
    def start(self, on_fragment: FragmentCallback, on_end: EndCallback, on_error: ErrorCallback) -> None:
        """Begin recognition. May raise if the stream cannot be opened."""

    @abstractmethod
    def stop(self) -> None:
        """Stop recognition. Must be safe to call more than once."""


class RenderBackend(ABC):
    """Text-to-speech backend used by the render port."""

    @abstractmethod
    async def render(self, text: str, options: VoiceOptions) -> None:
        """Speak text and return once playback has completed."""


@dataclass
class SilenceWatch:
    """Deadline state for a single listen attempt."""
    threshold_s: float
    deadline: Optional[float] = None
    speech_active: bool = False
    _handle: Optional[asyncio.TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, loop: asyncio.AbstractEventLoop, callback: Callable[[], None]) -> None:
        """Start (or restart) the countdown from now."""
        self.disarm()
        self.deadline = loop.time() + self.threshold_s
        self._handle = loop.call_at(self.deadline, callback)

    def disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.deadline = None


class SpeechCapturePort:
    """
    Single-shot "next utterance" wrapper around a SpeechStream.

    Each listen() call resolves exactly once: speech, silence, or a
    CaptureError. All settle paths go through _settle(), keyed by the attempt
    id, so late timer or stream callbacks from an older attempt are inert.
    """

    def __init__(self, stream: SpeechStream,
                 arm_policy: SilenceArmPolicy = SilenceArmPolicy.IMMEDIATE):
        self.stream = stream
        self.arm_policy = SilenceArmPolicy(arm_policy)
        self._attempt = 0
        self._future: Optional[asyncio.Future] = None
        self._watch: Optional[SilenceWatch] = None
        self._final_parts: List[str] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_listening(self) -> bool:
        return self._future is not None and not self._future.done()

    @property
    def watch(self) -> Optional[SilenceWatch]:
        """The silence watch of the outstanding attempt, if any."""
        return self._watch if self.is_listening else None

    async def listen(self, silence_threshold_ms: int) -> UtteranceResult:
        """
        Wait for the next utterance or for silence.

        Args:
            silence_threshold_ms: Quiet period after the last speech activity
                (or after listening starts, with the immediate arm policy)
                that ends the attempt

        Returns:
            UtteranceResult of kind "speech" with the finalized text, or "silence"

        Raises:
            ConcurrentListenError: If an attempt is already outstanding
            CaptureError: If the stream fails or the attempt is stopped
        """
        if self.is_listening:
            raise ConcurrentListenError("listen() called while a listen attempt is outstanding")
        if silence_threshold_ms <= 0:
            raise ValueError("silence_threshold_ms must be positive")

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._attempt += 1
        attempt = self._attempt
        future = loop.create_future()
        self._future = future
        self._final_parts = []
        self._watch = SilenceWatch(threshold_s=silence_threshold_ms / 1000.0)
        logger.debug(f"Listen attempt {attempt} started (threshold {silence_threshold_ms}ms, "
                     f"arm policy {self.arm_policy.value})")

        try:
            self.stream.start(
                on_fragment=lambda text, is_final: self._on_fragment(attempt, text, is_final),
                on_end=lambda: self._on_end(attempt),
                on_error=lambda exc: self._on_error(attempt, exc),
            )
        except Exception as e:
            error = CaptureError(f"Failed to start speech stream: {e}")
            error.__cause__ = e
            self._settle(attempt, error=error)
        else:
            if self.arm_policy == SilenceArmPolicy.IMMEDIATE:
                self._arm(attempt)

        try:
            return await future
        except asyncio.CancelledError:
            # Caller gave up on this attempt; tear it down without resolving twice
            self._settle(attempt, error=CaptureCancelledError("Listen attempt cancelled"))
            raise

    def stop(self) -> None:
        """Stop the outstanding attempt, if any. Safe to call at any time."""
        if not self.is_listening:
            return
        logger.debug(f"Stopping listen attempt {self._attempt}")
        self._settle(self._attempt, error=CaptureCancelledError("Listening stopped"))

    # ------------------------------------------------------------------
    # Stream and timer callbacks
    # ------------------------------------------------------------------

    def _is_current(self, attempt: int) -> bool:
        return attempt == self._attempt and self.is_listening

    def _arm(self, attempt: int) -> None:
        if not self._is_current(attempt) or self._watch is None or self._loop is None:
            return
        self._watch.arm(self._loop, lambda: self._on_deadline(attempt))

    def _final_text(self) -> str:
        return " ".join(self._final_parts).strip()

    def _on_fragment(self, attempt: int, text: str, is_final: bool) -> None:
        if not self._is_current(attempt):
            return
        text = (text or "").strip()
        if not text:
            return
        if is_final:
            self._final_parts.append(text)
            self._watch.speech_active = False
        else:
            self._watch.speech_active = True
        # Any speech fragment restarts the quiet window
        self._arm(attempt)

    def _on_deadline(self, attempt: int) -> None:
        if not self._is_current(attempt):
            return
        final_text = self._final_text()
        if final_text:
            logger.debug(f"Attempt {attempt}: quiet after final speech")
            self._settle(attempt, result=UtteranceResult.speech(final_text))
        else:
            logger.debug(f"Attempt {attempt}: silence threshold reached")
            self._settle(attempt, result=UtteranceResult.silence())

    def _on_end(self, attempt: int) -> None:
        if not self._is_current(attempt):
            return
        final_text = self._final_text()
        if final_text:
            self._settle(attempt, result=UtteranceResult.speech(final_text))
        elif not self._watch.speech_active:
            self._settle(attempt, result=UtteranceResult.silence())
        elif not self._watch.armed:
            # Interim speech with no final result yet: let the deadline decide
            self._arm(attempt)

    def _on_error(self, attempt: int, exc: Exception) -> None:
        if not self._is_current(attempt):
            return
        if isinstance(exc, CaptureError):
            error = exc
        else:
            error = CaptureError(f"Speech recognition error: {exc}")
            error.__cause__ = exc
        self._settle(attempt, error=error)

    def _settle(self, attempt: int, result: Optional[UtteranceResult] = None,
                error: Optional[Exception] = None) -> None:
        """Resolve the attempt once; every later call for it is a no-op."""
        if attempt != self._attempt or self._future is None:
            return
        future = self._future
        self._future = None
        if self._watch is not None:
            self._watch.disarm()
        try:
            self.stream.stop()
        except Exception as e:
            logger.warning(f"Error stopping speech stream: {e}")

        if future.done():
            return
        if error is not None:
            logger.debug(f"Attempt {attempt} failed: {error}")
            future.set_exception(error)
        else:
            logger.debug(f"Attempt {attempt} resolved: {result.kind}")
            future.set_result(result)


class SpeechRenderPort:
    """
    Cancellable "speak and wait for completion" wrapper around a RenderBackend.

    speak() never queues: a new call interrupts the one in flight, whose caller
    receives RenderCancelledError.
    """

    def __init__(self, backend: RenderBackend, default_options: Optional[VoiceOptions] = None):
        self.backend = backend
        self.default_options = default_options or VoiceOptions()
        self._playback: Optional[asyncio.Future] = None

    @property
    def is_speaking(self) -> bool:
        return self._playback is not None and not self._playback.done()

    async def speak(self, text: str, options: Optional[VoiceOptions] = None) -> None:
        """
        Speak text and wait until playback completes.

        Raises:
            RenderCancelledError: If stop() or a newer speak() interrupted playback
            RenderError: If synthesis or playback failed
        """
        self.stop()
        if not text or not text.strip():
            return

        playback = asyncio.ensure_future(self._render(text.strip(), options or self.default_options))
        self._playback = playback
        try:
            # wait() keeps the caller's own cancellation apart from an interrupted playback
            await asyncio.wait({playback})
        except asyncio.CancelledError:
            playback.cancel()
            raise
        finally:
            if self._playback is playback:
                self._playback = None

        if playback.cancelled():
            raise RenderCancelledError("Playback interrupted")
        playback.result()

    def stop(self) -> None:
        """Cancel any in-flight playback. Idempotent."""
        playback = self._playback
        self._playback = None
        if playback is None or playback.done():
            return
        render_logger.debug("Stopping in-flight playback")
        playback.cancel()

    async def _render(self, text: str, options: VoiceOptions) -> None:
        render_logger.info(f"Speaking: {text}")
        try:
            await self.backend.render(text, options)
        except (asyncio.CancelledError, RenderError):
            raise
        except Exception as e:
            raise RenderError(f"Speech synthesis failed: {e}") from e
