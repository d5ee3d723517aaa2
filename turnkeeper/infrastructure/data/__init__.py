"""
Data management infrastructure for transcripts and session records.
"""

from .conversations import TranscriptStore, SessionRecord

__all__ = [
    'TranscriptStore',
    'SessionRecord'
]
