"""
Data models for the interview system.
"""
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, List, Any


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class Speaker(str, Enum):
    """Who produced a turn."""
    SYSTEM = "system"
    HUMAN = "human"


@dataclass
class Turn:
    """Represents a single utterance in the conversation."""
    speaker: Speaker
    text: str
    timestamp: str = field(default_factory=utc_timestamp)

    def __post_init__(self):
        self.speaker = Speaker(self.speaker)
        if not isinstance(self.text, str) or not self.text.strip():
            raise ValueError("Turn text must be non-empty")

    def to_dict(self) -> Dict[str, str]:
        return {"speaker": self.speaker.value, "text": self.text, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Turn":
        return cls(speaker=Speaker(data["speaker"]), text=data["text"], timestamp=data["timestamp"])


@dataclass
class InterviewContext:
    """Role context forwarded to the dialogue policy; opaque to the engine."""
    role: str
    level: str
    interview_type: str
    tech_stack: List[str] = field(default_factory=list)
    guiding_questions: List[str] = field(default_factory=list)
    candidate_name: str = "Candidate"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InterviewContext":
        return cls(**data)


@dataclass
class Session:
    """One interview run."""
    context: InterviewContext
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=utc_timestamp)


@dataclass(frozen=True)
class UtteranceResult:
    """Outcome of a single listen attempt."""
    kind: str  # "speech" | "silence"
    text: str = ""

    @classmethod
    def speech(cls, text: str) -> "UtteranceResult":
        return cls(kind="speech", text=text)

    @classmethod
    def silence(cls) -> "UtteranceResult":
        return cls(kind="silence")

    @property
    def is_speech(self) -> bool:
        return self.kind == "speech"


@dataclass(frozen=True)
class VoiceOptions:
    """Playback options passed to the render port."""
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0


@dataclass
class EngineResult:
    """Final outcome of an engine run."""
    session_id: str
    turns: List[Turn] = field(default_factory=list)
    human_turns: int = 0
    end_reason: str = "ended"  # ceiling | ended | retries_exhausted | faulted
    degraded: bool = False
    faults: int = 0
    finalization_error: Optional[str] = None
