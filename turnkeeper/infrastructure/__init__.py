"""Infrastructure components for the turnkeeper system.

This module contains the low-level technical components behind the engine's
ports: transcript persistence, the LLM transport and (in the `audio`
subpackage, imported on demand) speech backends.
"""

# LLM infrastructure
from .llm import VertexRestClient, LLMRequestError

# Transcript persistence
from .data import TranscriptStore, SessionRecord

__all__ = [
    "VertexRestClient", "LLMRequestError",
    "TranscriptStore", "SessionRecord"
]
