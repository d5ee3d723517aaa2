"""
Testing infrastructure with scripted fakes for the interview engine.
"""
import asyncio
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from .decision_engine import DialoguePolicyClient
from .errors import PolicyUnavailableError
from .models import InterviewContext, Session, Turn, VoiceOptions
from .schemas import SilenceArmPolicy
from .services import (
    SpeechStream, RenderBackend, SpeechCapturePort, SpeechRenderPort,
    FragmentCallback, EndCallback, ErrorCallback
)
from ..config import EngineConfig
from ..infrastructure.data.conversations import TranscriptStore


@dataclass
class StreamStep:
    """One scripted stream callback, fired `delay` seconds after the previous step."""
    kind: str
    text: str = ""
    delay: float = 0.0
    error: Optional[Exception] = None

    @classmethod
    def interim(cls, text: str, delay: float = 0.0) -> "StreamStep":
        return cls("interim", text, delay)

    @classmethod
    def final(cls, text: str, delay: float = 0.0) -> "StreamStep":
        return cls("final", text, delay)

    @classmethod
    def end(cls, delay: float = 0.0) -> "StreamStep":
        return cls("end", delay=delay)

    @classmethod
    def fail(cls, error: Exception, delay: float = 0.0) -> "StreamStep":
        return cls("error", delay=delay, error=error)


class ScriptedSpeechStream(SpeechStream):
    """
    Speech stream that replays one script per start() call.

    A start() with no script left produces no callbacks at all, so the
    listen attempt is decided by the silence deadline.
    """

    def __init__(self, scripts: Optional[Sequence[Sequence[StreamStep]]] = None):
        self.scripts: List[List[StreamStep]] = [list(script) for script in (scripts or [])]
        self.start_count = 0
        self.stop_count = 0
        self._handles: List[asyncio.TimerHandle] = []

    @property
    def active(self) -> bool:
        return any(not handle.cancelled() for handle in self._handles)

    def start(self, on_fragment: FragmentCallback, on_end: EndCallback, on_error: ErrorCallback) -> None:
        self.start_count += 1
        script = self.scripts.pop(0) if self.scripts else []
        loop = asyncio.get_running_loop()
        at = 0.0
        for step in script:
            at += step.delay
            self._handles.append(loop.call_later(at, self._fire, step, on_fragment, on_end, on_error))

    def stop(self) -> None:
        self.stop_count += 1
        for handle in self._handles:
            handle.cancel()
        self._handles = []

    @staticmethod
    def _fire(step: StreamStep, on_fragment: FragmentCallback, on_end: EndCallback,
              on_error: ErrorCallback) -> None:
        if step.kind == "interim":
            on_fragment(step.text, False)
        elif step.kind == "final":
            on_fragment(step.text, True)
        elif step.kind == "end":
            on_end()
        elif step.kind == "error":
            on_error(step.error)


class MockRenderBackend(RenderBackend):
    """Render backend that records what it was asked to say."""

    def __init__(self, duration: float = 0.0, failures: Optional[Sequence[Optional[Exception]]] = None):
        self.duration = duration
        self.failures: List[Optional[Exception]] = list(failures or [])
        self.rendered: List[str] = []
        self.completed: List[str] = []
        self.options: List[VoiceOptions] = []

    async def render(self, text: str, options: VoiceOptions) -> None:
        self.rendered.append(text)
        self.options.append(options)
        # None entries let a call through so later calls can fail
        failure = self.failures.pop(0) if self.failures else None
        if failure is not None:
            raise failure
        await asyncio.sleep(self.duration)
        self.completed.append(text)


class MockLLMClient:
    """Mock LLM client for testing."""

    def __init__(self, mock_responses: Sequence[Union[str, Exception]]):
        self.mock_responses = list(mock_responses)
        self.current_response_idx = 0
        self.request_history: List[Dict[str, Any]] = []

    def generate_chat(self, messages, system_instruction=None, temperature=0.0, max_output_tokens=None) -> str:
        """Return (or raise) the next mock response."""
        self.request_history.append({
            "messages": messages,
            "system_instruction": system_instruction,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        })
        if self.current_response_idx < len(self.mock_responses):
            response = self.mock_responses[self.current_response_idx]
            self.current_response_idx += 1
        else:
            response = "Thanks, could you tell me more about that?"
        if isinstance(response, Exception):
            raise response
        return response


class MockPolicyClient(DialoguePolicyClient):
    """Dialogue policy fake returning queued utterances or raising queued errors."""

    def __init__(self, utterances: Sequence[Union[str, Exception]] = (), delay: float = 0.0,
                 default: str = "Tell me more about that."):
        # Don't call super().__init__ to avoid requiring an LLM client
        self.utterances = list(utterances)
        self.delay = delay
        self.default = default
        self.inputs: List[str] = []
        self.histories: List[List[Turn]] = []

    async def next_utterance(self, context: InterviewContext, transcript: List[Turn], new_input: str) -> str:
        self.inputs.append(new_input)
        self.histories.append(list(transcript))
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.utterances:
            return self.default
        item = self.utterances.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def unavailable(message: str = "policy service unavailable") -> PolicyUnavailableError:
    return PolicyUnavailableError(message)


def create_test_context() -> InterviewContext:
    return InterviewContext(
        role="Backend Engineer",
        level="Senior",
        interview_type="technical",
        tech_stack=["Python", "PostgreSQL"],
        guiding_questions=[
            "Tell me about a system you designed end to end.",
            "How do you approach debugging production incidents?",
        ],
        candidate_name="Alex",
    )


def create_mock_interview_setup(
    scripts: Optional[Sequence[Sequence[StreamStep]]] = None,
    utterances: Sequence[Union[str, Exception]] = (),
    render_failures: Optional[Sequence[Optional[Exception]]] = None,
    max_human_turns: int = 2,
    silence_threshold_ms: int = 50,
    max_retries_per_state: int = 3,
    arm_policy: SilenceArmPolicy = SilenceArmPolicy.IMMEDIATE,
    workdir: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a complete fake engine setup for testing."""
    stream = ScriptedSpeechStream(scripts)
    backend = MockRenderBackend(failures=render_failures)
    policy = MockPolicyClient(utterances)
    store = TranscriptStore(workdir or tempfile.mkdtemp())
    config = EngineConfig(
        max_human_turns=max_human_turns,
        silence_threshold_ms=silence_threshold_ms,
        max_retries_per_state=max_retries_per_state,
        fault_backoff_seconds=0.0,
        use_policy_greeting=False,
    )
    return {
        "session": Session(context=create_test_context()),
        "stream": stream,
        "capture": SpeechCapturePort(stream, arm_policy),
        "backend": backend,
        "render": SpeechRenderPort(backend),
        "policy": policy,
        "store": store,
        "config": config,
    }
