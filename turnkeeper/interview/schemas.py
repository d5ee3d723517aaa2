"""
Structured schemas and state enums for the interview system.
"""
from enum import Enum
from typing import List, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from .models import InterviewContext, Turn


class EngineState(str, Enum):
    """Who holds the floor right now."""
    IDLE = "idle"
    GREETING = "greeting"
    AWAITING_HUMAN = "awaiting_human"
    SILENCE_PENDING = "silence_pending"
    DISPATCHING = "dispatching"
    RENDERING = "rendering"
    FINISHED = "finished"


class SilenceArmPolicy(str, Enum):
    """When the capture port starts counting down to a silence result."""
    IMMEDIATE = "immediate"
    ON_ACTIVITY = "on_activity"


class EndReason(str, Enum):
    """Why a session reached the finished state."""
    CEILING = "ceiling"
    ENDED = "ended"
    RETRIES_EXHAUSTED = "retries_exhausted"
    FAULTED = "faulted"


# =============================================================================
# Dialogue policy wire contract
# =============================================================================

class PolicyContextPayload(BaseModel):
    """Interview context as sent to the policy service."""
    model_config = ConfigDict(populate_by_name=True)

    role: str
    level: str
    type: str
    tech_stack: List[str] = Field(default_factory=list, alias="techStack")
    guiding_questions: List[str] = Field(default_factory=list, alias="guidingQuestions")
    candidate_name: str = Field(default="Candidate", alias="candidateName")


class TurnPayload(BaseModel):
    """A transcript turn on the wire."""
    speaker: str
    text: str
    timestamp: str


class PolicyRequest(BaseModel):
    """Request to the dialogue policy service."""
    context: PolicyContextPayload
    history: List[TurnPayload] = Field(default_factory=list)
    input: str

    @field_validator("input")
    @classmethod
    def _input_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("input must not be empty")
        return value.strip()

    @classmethod
    def build(cls, context: "InterviewContext", transcript: List["Turn"], new_input: str) -> "PolicyRequest":
        return cls(
            context=PolicyContextPayload(
                role=context.role,
                level=context.level,
                type=context.interview_type,
                tech_stack=list(context.tech_stack),
                guiding_questions=list(context.guiding_questions),
                candidate_name=context.candidate_name,
            ),
            history=[TurnPayload(**turn.to_dict()) for turn in transcript],
            input=new_input,
        )

    def human_turn_count(self) -> int:
        return sum(1 for turn in self.history if turn.speaker == "human")


class PolicyResponse(BaseModel):
    """Response from the dialogue policy service."""
    utterance: str

    @field_validator("utterance")
    @classmethod
    def _utterance_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("utterance must not be empty")
        return value.strip()
