"""
Transcript Store Tests

Tests for TranscriptStore including:
- Append order and durability across instances
- Clearing one or all sessions
- Session records
- Error handling
"""
import json
import os

import pytest

from turnkeeper.infrastructure.data import TranscriptStore, SessionRecord
from turnkeeper.interview.errors import TranscriptStoreError
from turnkeeper.interview.models import Turn, Speaker


@pytest.fixture
def store(tmp_path):
    return TranscriptStore(str(tmp_path))


class TestAppendAndRead:
    """Test append/all."""

    def test_turns_are_returned_in_append_order(self, store):
        store.append("s1", Turn(Speaker.SYSTEM, "Hello, please introduce yourself."))
        store.append("s1", Turn(Speaker.HUMAN, "I'm Alex."))
        store.append("s1", Turn(Speaker.SYSTEM, "Nice to meet you."))

        turns = store.all("s1")

        assert [t.text for t in turns] == [
            "Hello, please introduce yourself.", "I'm Alex.", "Nice to meet you."
        ]
        assert [t.speaker for t in turns] == [Speaker.SYSTEM, Speaker.HUMAN, Speaker.SYSTEM]

    def test_unknown_session_is_empty(self, store):
        assert store.all("never-seen") == []

    def test_all_returns_a_copy(self, store):
        store.append("s1", Turn(Speaker.HUMAN, "answer"))
        store.all("s1").clear()
        assert len(store.all("s1")) == 1

    def test_sessions_are_isolated(self, store):
        store.append("a", Turn(Speaker.HUMAN, "from a"))
        store.append("b", Turn(Speaker.HUMAN, "from b"))

        assert [t.text for t in store.all("a")] == ["from a"]
        assert store.sessions() == ["a", "b"]

    def test_transcript_survives_a_new_store_instance(self, tmp_path):
        """Test that a fresh store reading the same workdir sees every turn."""
        first = TranscriptStore(str(tmp_path))
        first.append("s1", Turn(Speaker.SYSTEM, "Question one?", timestamp="2026-01-01T00:00:00+00:00"))
        first.append("s1", Turn(Speaker.HUMAN, "Answer one."))

        reopened = TranscriptStore(str(tmp_path))
        turns = reopened.all("s1")

        assert [t.text for t in turns] == ["Question one?", "Answer one."]
        assert turns[0].timestamp == "2026-01-01T00:00:00+00:00"

    def test_failed_write_leaves_transcript_unchanged(self, store, monkeypatch):
        store.append("s1", Turn(Speaker.HUMAN, "kept"))

        def broken_write(path, data):
            raise TranscriptStoreError("disk full")
        monkeypatch.setattr(store, "_write_json", broken_write)

        with pytest.raises(TranscriptStoreError):
            store.append("s1", Turn(Speaker.SYSTEM, "lost"))
        assert [t.text for t in store.all("s1")] == ["kept"]


class TestClear:
    """Test clearing transcripts."""

    def test_clear_removes_one_session(self, store, tmp_path):
        store.append("a", Turn(Speaker.HUMAN, "from a"))
        store.append("b", Turn(Speaker.HUMAN, "from b"))

        store.clear("a")

        assert store.all("a") == []
        assert TranscriptStore(str(tmp_path)).all("a") == []
        assert len(store.all("b")) == 1

    def test_clear_unknown_session_is_noop(self, store):
        store.clear("nothing-here")

    def test_clear_all(self, store):
        store.append("a", Turn(Speaker.HUMAN, "x"))
        store.append("b", Turn(Speaker.HUMAN, "y"))

        store.clear_all()

        assert store.sessions() == []
        assert store.all("a") == []


class TestSessionRecords:
    """Test finalized session records."""

    def test_finalize_and_load_record(self, store):
        turns = [Turn(Speaker.SYSTEM, "Hi"), Turn(Speaker.HUMAN, "Hello")]
        record = SessionRecord(
            session_id="s1",
            created_at="2026-01-01T00:00:00+00:00",
            context={"role": "Engineer", "level": "Senior", "interview_type": "technical",
                     "tech_stack": ["Go"], "guiding_questions": [], "candidate_name": "Sam"},
            turns=turns,
            end_reason="ceiling",
            human_turns=1,
        )

        path = store.finalize(record)
        loaded = store.load_record("s1")

        assert os.path.exists(path)
        assert path == store.record_path("s1")
        assert loaded.end_reason == "ceiling"
        assert [t.text for t in loaded.turns] == ["Hi", "Hello"]
        assert loaded.interview_context().candidate_name == "Sam"

    def test_missing_record_is_none(self, store):
        assert store.load_record("s1") is None


class TestStoreErrors:
    """Test error handling."""

    @pytest.mark.parametrize("session_id", ["", "../escape", "a/b", ".."])
    def test_invalid_session_ids_are_rejected(self, store, session_id):
        with pytest.raises(TranscriptStoreError):
            store.append(session_id, Turn(Speaker.HUMAN, "x"))

    def test_corrupt_transcript_raises(self, tmp_path):
        store = TranscriptStore(str(tmp_path))
        with open(os.path.join(store.transcripts_dir, "bad.json"), "w") as f:
            f.write("{not json")

        with pytest.raises(TranscriptStoreError):
            store.all("bad")

    def test_file_format(self, store):
        store.append("s1", Turn(Speaker.HUMAN, "answer"))

        with open(os.path.join(store.transcripts_dir, "s1.json")) as f:
            data = json.load(f)

        assert data["session_id"] == "s1"
        assert data["turns"][0]["speaker"] == "human"
        assert data["turns"][0]["text"] == "answer"

    def test_empty_turn_text_is_rejected(self):
        with pytest.raises(ValueError):
            Turn(Speaker.HUMAN, "   ")
