"""
Turnkeeper: turn-taking engine for spoken interviews.

Alternates between an AI interviewer and a human candidate over a voice
channel: it listens, detects the end of each answer or a silence, asks an
LLM-backed dialogue policy what to say next, speaks it, and keeps a durable
transcript of every turn.
"""

__version__ = "1.0.0"

# Main entry points
from .interview.engine import TurnTakingEngine, SessionRegistry
from .interview.models import Turn, Session, InterviewContext, EngineResult

__all__ = ["TurnTakingEngine", "SessionRegistry", "Turn", "Session", "InterviewContext", "EngineResult"]
