"""
Durable transcript storage.
Keeps an append-only, ordered log of turns per session in JSON files so a
transcript survives a process restart.
"""
import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from ...interview.errors import TranscriptStoreError
from ...interview.models import Turn, InterviewContext, utc_timestamp

logger = logging.getLogger("transcript_store")

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass
class SessionRecord:
    """Complete record of a single finished session."""
    session_id: str
    created_at: str
    context: Dict[str, Any] = field(default_factory=dict)
    turns: List[Turn] = field(default_factory=list)
    end_reason: str = "ended"
    degraded: bool = False
    human_turns: int = 0
    finished_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at,
            "context": self.context,
            "turns": [turn.to_dict() for turn in self.turns],
            "end_reason": self.end_reason,
            "degraded": self.degraded,
            "human_turns": self.human_turns,
            "finished_at": self.finished_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        return cls(
            session_id=data["session_id"],
            created_at=data["created_at"],
            context=data.get("context", {}),
            turns=[Turn.from_dict(t) for t in data.get("turns", [])],
            end_reason=data.get("end_reason", "ended"),
            degraded=bool(data.get("degraded", False)),
            human_turns=int(data.get("human_turns", 0)),
            finished_at=data.get("finished_at", ""),
        )

    def interview_context(self) -> Optional[InterviewContext]:
        return InterviewContext.from_dict(self.context) if self.context else None


class TranscriptStore:
    """
    Append-only transcript log keyed by session id.

    Each session lives in ``<workdir>/transcripts/<session_id>.json`` and is
    rewritten atomically on every append. Finalized session records go to
    ``<workdir>/sessions/<session_id>.json``.
    """

    def __init__(self, workdir: str):
        self.workdir = workdir
        self.transcripts_dir = os.path.join(workdir, "transcripts")
        self.records_dir = os.path.join(workdir, "sessions")
        os.makedirs(self.transcripts_dir, exist_ok=True)
        os.makedirs(self.records_dir, exist_ok=True)
        self._cache: Dict[str, List[Turn]] = {}

    def _check_session_id(self, session_id: str) -> None:
        if not session_id or not _SESSION_ID_PATTERN.match(session_id) or session_id in (".", ".."):
            raise TranscriptStoreError(f"Invalid session id: {session_id!r}")

    def _transcript_path(self, session_id: str) -> str:
        return os.path.join(self.transcripts_dir, f"{session_id}.json")

    def record_path(self, session_id: str) -> str:
        return os.path.join(self.records_dir, f"{session_id}.json")

    def _load(self, session_id: str) -> List[Turn]:
        """Return the cached turns for a session, reading the file on first use."""
        if session_id in self._cache:
            return self._cache[session_id]

        path = self._transcript_path(session_id)
        turns: List[Turn] = []
        if os.path.exists(path):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                turns = [Turn.from_dict(t) for t in data.get("turns", [])]
            except (OSError, ValueError, KeyError, TypeError) as e:
                raise TranscriptStoreError(f"Failed to load transcript {session_id}: {e}") from e
            logger.debug(f"Loaded {len(turns)} turns for session {session_id}")

        self._cache[session_id] = turns
        return turns

    def _write_json(self, path: str, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(path)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise TranscriptStoreError(f"Failed to write {path}: {e}") from e

    def append(self, session_id: str, turn: Turn) -> None:
        """Append a turn and persist the session's transcript."""
        self._check_session_id(session_id)
        turns = self._load(session_id)
        updated = turns + [turn]
        self._write_json(self._transcript_path(session_id), {
            "session_id": session_id,
            "turns": [t.to_dict() for t in updated],
        })
        # Only commit to the cache once the file is on disk
        self._cache[session_id] = updated
        logger.debug(f"Appended {turn.speaker.value} turn #{len(updated)} to session {session_id}")

    def all(self, session_id: str) -> List[Turn]:
        """Return the session's turns in append order."""
        self._check_session_id(session_id)
        return list(self._load(session_id))

    def clear(self, session_id: str) -> None:
        """Irreversibly delete a session's turns."""
        self._check_session_id(session_id)
        self._cache.pop(session_id, None)
        path = self._transcript_path(session_id)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise TranscriptStoreError(f"Failed to clear transcript {session_id}: {e}") from e
        logger.info(f"Cleared transcript for session {session_id}")

    def clear_all(self) -> None:
        """Irreversibly delete every stored transcript."""
        for session_id in self.sessions():
            self.clear(session_id)
        self._cache.clear()
        logger.info("Cleared all transcripts")

    def sessions(self) -> List[str]:
        """List session ids that have a stored transcript."""
        return sorted(
            filename[:-5] for filename in os.listdir(self.transcripts_dir)
            if filename.endswith('.json')
        )

    def finalize(self, record: SessionRecord) -> str:
        """Write the finished session record and return its path."""
        self._check_session_id(record.session_id)
        path = self.record_path(record.session_id)
        self._write_json(path, record.to_dict())
        logger.info(f"Finalized session {record.session_id} ({len(record.turns)} turns) -> {path}")
        return path

    def load_record(self, session_id: str) -> Optional[SessionRecord]:
        """Read a finalized session record, or None if the session was never finalized."""
        self._check_session_id(session_id)
        path = self.record_path(session_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return SessionRecord.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise TranscriptStoreError(f"Failed to load session record {session_id}: {e}") from e
