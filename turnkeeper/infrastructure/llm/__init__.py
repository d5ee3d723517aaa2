"""LLM transport."""

from .client import VertexRestClient, LLMRequestError

__all__ = ["VertexRestClient", "LLMRequestError"]
