"""
Turn-taking engine: the coordinator that decides who holds the floor.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from .decision_engine import DialoguePolicyClient
from .errors import (
    InterviewError, EngineStateError, ConcurrentListenError, CaptureError,
    RenderError, PolicyError, PolicyUnavailableError, TranscriptStoreError, SessionFinalizationError
)
from .events import (
    InterviewEventBus, EventType, SessionStartedEvent,
    StateChangedEvent, UtteranceEvent, FaultEvent, SessionFinishedEvent
)
from .models import Session, Speaker, Turn, EngineResult, VoiceOptions
from .schemas import EngineState, EndReason
from .services import SpeechCapturePort, SpeechRenderPort
from ..config import EngineConfig, SILENCE_MARKER, OPENING_MARKER
from ..infrastructure.data.conversations import TranscriptStore, SessionRecord

logger = logging.getLogger("engine")

Finalizer = Callable[[SessionRecord], Awaitable[None]]

# Faults the engine absorbs and retries; anything else is a contract violation
_RECOVERABLE = (CaptureError, RenderError, PolicyError, TranscriptStoreError)


def _as_fault(error: Exception, fallback: type) -> InterviewError:
    """
    Map a collaborator failure onto the fault type of the state it happened in.

    Taxonomy errors that end the session are re-raised; anything outside the
    taxonomy is wrapped in `fallback` so the state can recover from it.
    """
    if isinstance(error, _RECOVERABLE):
        return error
    if isinstance(error, InterviewError):
        raise error
    fault = fallback(f"Unexpected {type(error).__name__}: {error}")
    fault.__cause__ = error
    return fault


class TurnTakingEngine:
    """
    Finite-state coordinator for one live interview session.

    The engine holds at most one outstanding capture, render or policy call
    at a time, so transcript appends happen in occurrence order without
    locking. Every asynchronous continuation is checked against the session
    generation captured when it was started; once the engine has finished or
    restarted, late settlements are ignored.

    Event handlers run synchronously after the transition they describe has
    been committed. All transition entry points are coroutines, so a handler
    can only re-enter the engine by scheduling a task.
    """

    def __init__(self,
                 session: Session,
                 capture: SpeechCapturePort,
                 render: SpeechRenderPort,
                 policy: DialoguePolicyClient,
                 store: TranscriptStore,
                 config: Optional[EngineConfig] = None,
                 event_bus: Optional[InterviewEventBus] = None,
                 voice_options: Optional[VoiceOptions] = None,
                 finalizer: Optional[Finalizer] = None):
        self.session = session
        self.capture = capture
        self.render = render
        self.policy = policy
        self.store = store
        self.config = config or EngineConfig()
        self.event_bus = event_bus or InterviewEventBus()
        self.voice_options = voice_options
        self.finalizer = finalizer

        self._state = EngineState.IDLE
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._finalization: Optional[asyncio.Future] = None
        self._finished: Optional[asyncio.Event] = None
        self._result: Optional[EngineResult] = None
        self._starting = False
        self._reset_run_state()

    def _reset_run_state(self) -> None:
        self._human_turns = 0
        self._faults = 0
        self._failures: Dict[EngineState, int] = {}
        self._end_reason = EndReason.ENDED
        self._degraded = False

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def human_turns(self) -> int:
        return self._human_turns

    @property
    def result(self) -> Optional[EngineResult]:
        return self._result

    def get_transcript(self) -> List[Turn]:
        """Ordered turns recorded for this session."""
        return self.store.all(self.session.session_id)

    def on_state_change(self, handler: Callable[[EngineState], None]) -> None:
        self.event_bus.subscribe(
            EventType.STATE_CHANGED, lambda event: handler(EngineState(event.data["state"]))
        )

    def on_utterance(self, handler: Callable[[Speaker, str], None]) -> None:
        self.event_bus.subscribe(
            EventType.UTTERANCE, lambda event: handler(Speaker(event.data["speaker"]), event.data["text"])
        )

    def on_fault(self, handler: Callable[[str, str], None]) -> None:
        self.event_bus.subscribe(
            EventType.FAULT, lambda event: handler(event.data["kind"], event.data["message"])
        )

    def on_finished(self, handler: Callable[[EngineResult], None]) -> None:
        self.event_bus.subscribe(EventType.SESSION_FINISHED, lambda event: handler(self._result))

    async def start(self) -> None:
        """
        Begin a conversation: greet, then alternate listening and responding.

        Allowed from the idle state, or from finished to run again. Returns as
        soon as the conversation task is running; use wait_finished() or run()
        to wait for the outcome.

        Raises:
            EngineStateError: If a conversation is already in progress
        """
        if self._state not in (EngineState.IDLE, EngineState.FINISHED):
            raise EngineStateError(f"Cannot start while {self._state.value}")
        if self._starting:
            raise EngineStateError("Cannot start while a restart is pending")
        if self._finalization is not None and not self._finalization.done():
            # Claim the run before yielding so a concurrent start() is rejected
            self._starting = True
            try:
                await asyncio.shield(self._finalization)
            finally:
                self._starting = False

        self._generation += 1
        generation = self._generation
        self._reset_run_state()
        self._result = None
        self._finalization = None
        self._finished = asyncio.Event()

        logger.info(f"Starting session {self.session.session_id} (generation {generation}, "
                    f"ceiling {self.config.max_human_turns} human turns)")
        self.event_bus.emit(SessionStartedEvent(
            self.session.session_id, time.time(), generation, self.config.max_human_turns
        ))
        self._transition(EngineState.GREETING)
        self._task = asyncio.create_task(self._run(generation))

    async def wait_finished(self) -> EngineResult:
        """Wait until the current conversation has finished and been finalized."""
        if self._finished is None:
            raise EngineStateError("Engine was never started")
        await self._finished.wait()
        return self._result

    async def run(self) -> EngineResult:
        """Start a conversation and wait for its result."""
        await self.start()
        return await self.wait_finished()

    async def end(self) -> Optional[EngineResult]:
        """
        End the conversation now.

        Cancels outstanding capture and playback, moves to finished and
        finalizes the transcript exactly once. Safe to call repeatedly; later
        calls return the same result. A no-op before start().
        """
        if self._state == EngineState.IDLE:
            logger.warning("end() called before start(); nothing to do")
            return None

        if self._state != EngineState.FINISHED:
            logger.info(f"End requested in state {self._state.value}")
            self._enter_finished(EndReason.ENDED)

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait({task})

        if self._finalization is None:
            return self._result
        return await asyncio.shield(self._finalization)

    # ------------------------------------------------------------------
    # Conversation loop
    # ------------------------------------------------------------------

    def _is_live(self, generation: int) -> bool:
        return generation == self._generation and self._state != EngineState.FINISHED

    async def _run(self, generation: int) -> None:
        try:
            await self._greet(generation)
            while self._is_live(generation):
                if self._human_turns >= self.config.max_human_turns:
                    logger.info(f"Turn ceiling reached ({self._human_turns} human turns)")
                    self._enter_finished(EndReason.CEILING)
                    break
                await self._exchange(generation)
        except ConcurrentListenError as e:
            if self._is_live(generation):
                logger.error(f"Capture contract violated: {e}")
                self._record_fault(e, self._state, attempt=1, recoverable=False)
                self._enter_finished(EndReason.FAULTED, degraded=True)
        except InterviewError as e:
            if self._is_live(generation):
                logger.error(f"Unrecoverable fault in {self._state.value}: {e}")
                self._record_fault(e, self._state, attempt=1, recoverable=False)
                self._enter_finished(EndReason.FAULTED, degraded=True)
        except Exception as e:
            if self._is_live(generation):
                logger.exception(f"Unexpected failure in {self._state.value}: {e}")
                self._record_fault(e, self._state, attempt=1, recoverable=False)
                self._enter_finished(EndReason.FAULTED, degraded=True)

        if generation == self._generation and self._finalization is not None:
            await asyncio.shield(self._finalization)

    async def _greet(self, generation: int) -> None:
        ctx = self.session.context
        greeting = None
        if self.config.use_policy_greeting:
            try:
                greeting = await self.policy.next_utterance(ctx, self.get_transcript(), OPENING_MARKER)
                if not greeting or not greeting.strip():
                    raise PolicyUnavailableError("Policy returned an empty greeting")
            except Exception as e:
                fault = _as_fault(e, PolicyUnavailableError)
                greeting = None
                if not self._is_live(generation):
                    return
                logger.warning(f"Policy greeting failed, using template: {fault}")
                self._record_fault(fault, EngineState.GREETING, attempt=1)
        if not self._is_live(generation):
            return

        if not greeting:
            greeting = self.config.greeting_template.format(
                name=ctx.candidate_name, role=ctx.role, level=ctx.level, type=ctx.interview_type
            )

        try:
            self._commit_turn(Speaker.SYSTEM, greeting.strip())
            await self.render.speak(greeting, self.voice_options)
        except Exception as e:
            fault = _as_fault(e, RenderError)
            if not self._is_live(generation):
                return
            logger.warning(f"Greeting could not be delivered: {fault}")
            self._record_fault(fault, EngineState.GREETING, attempt=1)

    async def _exchange(self, generation: int) -> None:
        """One listen -> dispatch -> render cycle."""
        self._transition(EngineState.AWAITING_HUMAN)
        try:
            outcome = await self.capture.listen(self.config.silence_threshold_ms)
        except Exception as e:
            await self._recover(generation, EngineState.AWAITING_HUMAN, _as_fault(e, CaptureError))
            return
        if not self._is_live(generation):
            return
        self._failures[EngineState.AWAITING_HUMAN] = 0

        try:
            history = self.get_transcript()
            if outcome.is_speech and outcome.text.strip():
                self._transition(EngineState.DISPATCHING)
                self._commit_turn(Speaker.HUMAN, outcome.text.strip())
                self._human_turns += 1
                policy_input = outcome.text.strip()
            else:
                self._transition(EngineState.SILENCE_PENDING)
                self._transition(EngineState.DISPATCHING)
                policy_input = SILENCE_MARKER

            reply = await self.policy.next_utterance(self.session.context, history, policy_input)
            if not self._is_live(generation):
                return
            if not reply or not reply.strip():
                raise PolicyUnavailableError("Policy returned an empty utterance")
            reply = reply.strip()
            self._commit_turn(Speaker.SYSTEM, reply)
        except Exception as e:
            await self._recover(generation, EngineState.DISPATCHING, _as_fault(e, PolicyUnavailableError))
            return
        self._failures[EngineState.DISPATCHING] = 0

        self._transition(EngineState.RENDERING)
        try:
            await self.render.speak(reply, self.voice_options)
        except Exception as e:
            await self._recover(generation, EngineState.RENDERING, _as_fault(e, RenderError))
            return
        if not self._is_live(generation):
            return
        self._failures[EngineState.RENDERING] = 0

    async def _recover(self, generation: int, state: EngineState, error: InterviewError) -> None:
        """Report a transient fault, then back off or give up for this state."""
        if not self._is_live(generation):
            return
        count = self._failures.get(state, 0) + 1
        self._failures[state] = count
        logger.warning(f"Recoverable fault in {state.value} "
                       f"({count}/{self.config.max_retries_per_state + 1}): {error}")
        self._record_fault(error, state, attempt=count)

        if count > self.config.max_retries_per_state:
            logger.error(f"Retry limit exceeded in {state.value}, ending session degraded")
            self._enter_finished(EndReason.RETRIES_EXHAUSTED, degraded=True)
            return
        await asyncio.sleep(self.config.fault_backoff_seconds)

    # ------------------------------------------------------------------
    # State, transcript and events
    # ------------------------------------------------------------------

    def _transition(self, new_state: EngineState) -> None:
        previous = self._state
        if previous == new_state:
            return
        self._state = new_state
        logger.debug(f"State {previous.value} -> {new_state.value}")
        self.event_bus.emit(StateChangedEvent(
            self.session.session_id, time.time(), previous.value, new_state.value
        ))

    def _commit_turn(self, speaker: Speaker, text: str) -> None:
        turn = Turn(speaker=speaker, text=text)
        self.store.append(self.session.session_id, turn)
        logger.info(f"{speaker.value}: {text}")
        self.event_bus.emit(UtteranceEvent(self.session.session_id, time.time(), speaker.value, text))

    def _record_fault(self, error: Exception, state: EngineState, attempt: int,
                      recoverable: bool = True) -> None:
        self._faults += 1
        kind = getattr(error, "kind", type(error).__name__)
        self.event_bus.emit(FaultEvent(
            self.session.session_id, time.time(), kind, str(error), state.value, attempt, recoverable
        ))

    def _enter_finished(self, reason: EndReason, degraded: bool = False) -> None:
        """Commit the finished state once per run and schedule finalization."""
        if self._state == EngineState.FINISHED:
            return
        self._end_reason = reason
        self._degraded = self._degraded or degraded
        self._transition(EngineState.FINISHED)

        for port in (self.capture, self.render):
            try:
                port.stop()
            except Exception as e:
                logger.warning(f"Error stopping {type(port).__name__}: {e}")

        self._finalization = asyncio.ensure_future(self._finalize())

    async def _finalize(self) -> EngineResult:
        session_id = self.session.session_id
        turns: List[Turn] = []
        finalization_error = None
        try:
            turns = self.get_transcript()
            record = SessionRecord(
                session_id=session_id,
                created_at=self.session.created_at,
                context=self.session.context.to_dict(),
                turns=turns,
                end_reason=self._end_reason.value,
                degraded=self._degraded,
                human_turns=self._human_turns,
            )
            self.store.finalize(record)
            if self.finalizer is not None:
                await self.finalizer(record)
        except Exception as e:
            error = SessionFinalizationError(f"Failed to finalize session {session_id}: {e}")
            logger.error(str(error))
            self._record_fault(error, EngineState.FINISHED, attempt=1, recoverable=False)
            finalization_error = str(error)

        result = EngineResult(
            session_id=session_id,
            turns=turns,
            human_turns=self._human_turns,
            end_reason=self._end_reason.value,
            degraded=self._degraded,
            faults=self._faults,
            finalization_error=finalization_error,
        )
        self._result = result
        logger.info(f"Session {session_id} finished: {result.end_reason}, "
                    f"{len(turns)} turns, degraded={result.degraded}")
        self.event_bus.emit(SessionFinishedEvent(
            session_id, time.time(), result.end_reason, result.degraded, len(turns), result.human_turns
        ))
        if self._finished is not None:
            self._finished.set()
        return result


class SessionRegistry:
    """Caller-owned registry of live engines keyed by session id."""

    def __init__(self):
        self._engines: Dict[str, TurnTakingEngine] = {}

    def add(self, engine: TurnTakingEngine) -> TurnTakingEngine:
        session_id = engine.session.session_id
        if session_id in self._engines:
            raise ValueError(f"Session {session_id} is already registered")
        self._engines[session_id] = engine
        return engine

    def get(self, session_id: str) -> Optional[TurnTakingEngine]:
        return self._engines.get(session_id)

    def remove(self, session_id: str) -> Optional[TurnTakingEngine]:
        return self._engines.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    async def end_all(self) -> List[Optional[EngineResult]]:
        """End every registered engine."""
        engines = list(self._engines.values())
        return list(await asyncio.gather(*(engine.end() for engine in engines)))
