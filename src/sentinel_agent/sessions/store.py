"""Bounded, file-backed store of per-conversation agent state.

Durability is best effort: load and save failures are logged and swallowed,
and a failed save leaves the in-memory mapping ahead of the file until the
next successful save. Concurrent writers are last-writer-wins.

Methods block on file I/O and are safe to call from worker threads; async
callers should run them via `asyncio.to_thread`.
"""

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from sentinel_agent.config import (
    DEFAULT_MAX_HISTORY_PER_SESSION,
    DEFAULT_MAX_SESSION_FILE_BYTES,
    DEFAULT_MAX_SESSIONS,
    AgentSettings,
)
from sentinel_agent.state.record import AgentState

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def _activity_key(state: AgentState) -> float:
    last = state.last_activity()
    return last.timestamp() if last is not None else 0.0


class SessionStore:
    """Maps conversation ids to their latest AgentState.

    Bounds enforced on every save:
    - each history holds at most `max_history_per_session` messages
    - at most `max_sessions` entries, evicting the least recently active
    - the serialized file fits in `max_file_bytes`, unless one entry remains
    """

    def __init__(
        self,
        path: Union[str, Path],
        *,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        max_history_per_session: int = DEFAULT_MAX_HISTORY_PER_SESSION,
        max_file_bytes: int = DEFAULT_MAX_SESSION_FILE_BYTES,
    ):
        if max_sessions < 1 or max_history_per_session < 1 or max_file_bytes < 1:
            raise ValueError("Session store limits must be positive")
        self.path = Path(path)
        self.max_sessions = max_sessions
        self.max_history_per_session = max_history_per_session
        self.max_file_bytes = max_file_bytes
        self._sessions: Dict[str, AgentState] = {}
        self._lock = threading.Lock()
        self._load()

    @classmethod
    def from_settings(cls, settings: AgentSettings) -> "SessionStore":
        return cls(
            settings.session_file,
            max_sessions=settings.max_sessions,
            max_history_per_session=settings.max_history_per_session,
            max_file_bytes=settings.max_session_file_bytes,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, conversation_id: object) -> bool:
        with self._lock:
            return conversation_id in self._sessions

    def conversation_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def get(self, conversation_id: str) -> Optional[AgentState]:
        with self._lock:
            return self._sessions.get(conversation_id)

    def get_or_create(self, conversation_id: str) -> AgentState:
        """Return the stored state, inserting and persisting a fresh one if absent."""
        with self._lock:
            existing = self._sessions.get(conversation_id)
            if existing is not None:
                return existing

            logger.info(f"Creating session: {conversation_id}")
            state = AgentState(conversation_id=conversation_id)
            self._sessions[conversation_id] = state
            self._persist()
            return state

    def update(self, state: AgentState) -> None:
        """Store `state` under its conversation id with a bounded history, then persist."""
        with self._lock:
            self._sessions[state.conversation_id] = self._trim_history(state)
            self._persist()

    def remove(self, conversation_id: str) -> bool:
        with self._lock:
            if self._sessions.pop(conversation_id, None) is None:
                return False
            self._persist()
            return True

    # Bounds

    def _trim_history(self, state: AgentState) -> AgentState:
        history = state.conversation_history
        if len(history) <= self.max_history_per_session:
            return state
        return state.replace(conversation_history=history[-self.max_history_per_session :])

    def _prune(self) -> None:
        for conversation_id, state in list(self._sessions.items()):
            self._sessions[conversation_id] = self._trim_history(state)

        excess = len(self._sessions) - self.max_sessions
        if excess <= 0:
            return
        ordered = sorted(self._sessions.values(), key=_activity_key)
        for state in ordered[:excess]:
            logger.info(f"Evicting inactive session: {state.conversation_id}")
            del self._sessions[state.conversation_id]

    def _drop_oldest(self) -> None:
        oldest = min(self._sessions.values(), key=_activity_key)
        logger.warning(f"Session file over budget, evicting: {oldest.conversation_id}")
        del self._sessions[oldest.conversation_id]

    def _halve_histories(self) -> None:
        for conversation_id, state in list(self._sessions.items()):
            history = state.conversation_history
            keep = len(history) // 2
            self._sessions[conversation_id] = state.replace(
                conversation_history=history[len(history) - keep :]
            )

    # Serialization

    def _serialize(self) -> bytes:
        payload = {
            "schema_version": SCHEMA_VERSION,
            "sessions": {
                conversation_id: state.model_dump(mode="json")
                for conversation_id, state in self._sessions.items()
            },
        }
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")

    def _decode(self, raw: Any) -> Dict[str, AgentState]:
        if not isinstance(raw, dict):
            raise ValueError(f"Expected a JSON object, got {type(raw).__name__}")

        if "schema_version" in raw:
            version = raw.get("schema_version")
            if version != SCHEMA_VERSION:
                logger.error(f"Unsupported session schema version {version!r}; ignoring file")
                return {}
            entries = raw.get("sessions") or {}
        else:
            # Unversioned layout: the file is the bare id -> state mapping.
            entries = raw

        if not isinstance(entries, dict):
            raise ValueError(f"Expected a session mapping, got {type(entries).__name__}")

        sessions = {}
        for conversation_id, entry in entries.items():
            try:
                state = AgentState.model_validate(entry)
            except ValidationError as exc:
                logger.warning(f"Skipping unreadable session {conversation_id}: {exc}")
                continue
            if state.conversation_id != conversation_id:
                state = state.replace(conversation_id=conversation_id)
            sessions[conversation_id] = state
        return sessions

    def _load(self) -> None:
        if not self.path.exists():
            return

        try:
            content = self.path.read_text(encoding="utf-8")
            if not content.strip():
                return
            loaded = self._decode(json.loads(content))
        except (OSError, ValueError) as exc:
            logger.error(f"Failed to load sessions from {self.path}: {exc}", exc_info=True)
            return

        self._sessions = loaded
        self._prune()
        logger.info(f"Loaded {len(self._sessions)} session(s) from {self.path}")

    def _persist(self) -> None:
        try:
            self._prune()
            data = self._serialize()

            while len(data) > self.max_file_bytes and len(self._sessions) > 1:
                self._drop_oldest()
                data = self._serialize()

            if len(data) > self.max_file_bytes:
                self._halve_histories()
                data = self._serialize()

            self._write(data)
        except (OSError, ValueError, TypeError) as exc:
            logger.error(f"Failed to persist sessions to {self.path}: {exc}", exc_info=True)

    def _write(self, data: bytes) -> None:
        """Replace the session file so readers see either the old or the new content."""
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise
