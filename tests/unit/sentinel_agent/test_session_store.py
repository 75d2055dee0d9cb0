"""Tests for the bounded file-backed session store."""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from sentinel_agent.config import AgentSettings
from sentinel_agent.sessions import SCHEMA_VERSION, SessionStore
from sentinel_agent.state import AgentState, Message, Role

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def session(conversation_id, messages=1, minutes=0, content="hello"):
    """State whose newest message is `minutes` after BASE_TIME."""
    history = tuple(
        Message(
            role=Role.USER if i % 2 == 0 else Role.ASSISTANT,
            content=content,
            timestamp=BASE_TIME + timedelta(minutes=minutes, seconds=i - messages),
        )
        for i in range(messages)
    )
    return AgentState(conversation_id=conversation_id, conversation_history=history)


@pytest.fixture
def session_file(tmp_path):
    return tmp_path / "sessions.json"


def read_file(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestLoad:
    def test_missing_file_means_no_sessions(self, session_file):
        store = SessionStore(session_file)

        assert len(store) == 0
        assert not session_file.exists()

    def test_blank_file_means_no_sessions(self, session_file):
        session_file.write_text("  \n", encoding="utf-8")

        assert len(SessionStore(session_file)) == 0

    def test_corrupt_file_is_logged_and_ignored(self, session_file, caplog):
        session_file.write_text("{not json", encoding="utf-8")

        store = SessionStore(session_file)

        assert len(store) == 0
        assert "Failed to load sessions" in caplog.text

    def test_unknown_schema_version_ignored(self, session_file, caplog):
        session_file.write_text(
            json.dumps({"schema_version": 99, "sessions": {"a": {"conversation_id": "a"}}}),
            encoding="utf-8",
        )

        store = SessionStore(session_file)

        assert len(store) == 0
        assert "Unsupported session schema version" in caplog.text

    def test_unversioned_mapping_is_read(self, session_file):
        legacy = {"a": session("a").model_dump(mode="json")}
        session_file.write_text(json.dumps(legacy), encoding="utf-8")

        store = SessionStore(session_file)

        assert store.conversation_ids() == ["a"]
        assert store.get("a").conversation_history[0].content == "hello"

    def test_unreadable_entry_skipped(self, session_file):
        payload = {
            "schema_version": SCHEMA_VERSION,
            "sessions": {
                "good": session("good").model_dump(mode="json"),
                "bad": {"iteration": -4},
            },
        }
        session_file.write_text(json.dumps(payload), encoding="utf-8")

        store = SessionStore(session_file)

        assert "good" in store
        assert "bad" not in store

    def test_load_applies_prune_policy(self, session_file):
        writer = SessionStore(session_file)
        for index, name in enumerate("abc"):
            writer.update(session(name, minutes=index))

        store = SessionStore(session_file, max_sessions=2)

        assert sorted(store.conversation_ids()) == ["b", "c"]


class TestGetOrCreate:
    def test_creates_and_persists(self, session_file):
        store = SessionStore(session_file)

        state = store.get_or_create("c1")

        assert state.conversation_id == "c1"
        assert "c1" in store
        assert read_file(session_file)["schema_version"] == SCHEMA_VERSION
        assert "c1" in read_file(session_file)["sessions"]

    def test_returns_existing(self, session_file):
        store = SessionStore(session_file)
        store.update(session("c1", messages=3))

        assert len(store.get_or_create("c1").conversation_history) == 3


class TestUpdate:
    def test_round_trip_through_file(self, session_file):
        SessionStore(session_file).update(session("c1", messages=2))

        reloaded = SessionStore(session_file)

        assert reloaded.get("c1") == session("c1", messages=2)

    def test_history_trimmed_to_most_recent(self, session_file):
        store = SessionStore(session_file, max_history_per_session=3)
        state = session("c1", messages=5)

        store.update(state)

        history = store.get("c1").conversation_history
        assert len(history) == 3
        assert history == state.conversation_history[-3:]

    def test_count_bound_evicts_least_recently_active(self, session_file):
        store = SessionStore(session_file, max_sessions=2)

        store.update(session("old", minutes=0))
        store.update(session("mid", minutes=5))
        store.update(session("new", minutes=10))

        assert sorted(store.conversation_ids()) == ["mid", "new"]
        assert sorted(read_file(session_file)["sessions"]) == ["mid", "new"]

    def test_size_bound_evicts_oldest(self, session_file):
        store = SessionStore(session_file, max_file_bytes=3000)

        store.update(session("first", content="x" * 1500, minutes=0))
        store.update(session("second", content="y" * 1500, minutes=1))

        assert store.conversation_ids() == ["second"]
        assert session_file.stat().st_size <= 3000

    def test_single_oversized_entry_history_halved(self, session_file):
        store = SessionStore(session_file, max_file_bytes=3000)

        store.update(session("only", messages=10, content="z" * 500))

        assert store.conversation_ids() == ["only"]
        assert len(store.get("only").conversation_history) == 5

    def test_write_leaves_no_temporary_files(self, session_file, tmp_path):
        store = SessionStore(session_file)

        store.update(session("a"))
        store.update(session("b"))

        assert [path.name for path in tmp_path.iterdir()] == ["sessions.json"]

    def test_failed_write_keeps_memory_state(self, session_file, caplog):
        store = SessionStore(session_file)

        with patch.object(SessionStore, "_write", side_effect=OSError("disk full")):
            store.update(session("a"))

        assert "a" in store
        assert not session_file.exists()
        assert "Failed to persist sessions" in caplog.text

    def test_concurrent_updates_from_threads(self, session_file):
        store = SessionStore(session_file, max_sessions=50)
        states = [session(f"c{i}", minutes=i) for i in range(20)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(store.update, states))

        assert sorted(store.conversation_ids()) == sorted(s.conversation_id for s in states)
        assert len(SessionStore(session_file)) == 20

    def test_remove(self, session_file):
        store = SessionStore(session_file)
        store.update(session("a"))

        assert store.remove("a") is True
        assert store.remove("a") is False
        assert read_file(session_file)["sessions"] == {}


class TestConstruction:
    def test_invalid_limits_rejected(self, session_file):
        with pytest.raises(ValueError):
            SessionStore(session_file, max_sessions=0)

    def test_from_settings(self, tmp_path):
        settings = AgentSettings(session_file=str(tmp_path / "s.json"), max_sessions=3)

        store = SessionStore.from_settings(settings)

        assert store.path == tmp_path / "s.json"
        assert store.max_sessions == 3
        assert store.max_history_per_session == settings.max_history_per_session
