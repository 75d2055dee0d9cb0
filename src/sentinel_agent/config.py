"""Agent configuration helpers."""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SESSION_FILE = "agent_sessions.json"
DEFAULT_MAX_SESSIONS = 20
DEFAULT_MAX_HISTORY_PER_SESSION = 50
DEFAULT_MAX_SESSION_FILE_BYTES = 2 * 1024 * 1024
DEFAULT_MAX_ITERATIONS = 10
DEFAULT_CLARIFY_CONFIDENCE = 0.6


def get_env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    """Get an environment variable, treating unset and blank alike."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_number(name: str, default: T, convert: Callable[[str], T]) -> T:
    value = get_env_str(name)
    if value is None:
        return default
    try:
        return convert(value)
    except ValueError:
        logger.warning("Invalid %s=%r; defaulting to %s", name, value, default)
        return default


def _positive_int(name: str, default: int) -> int:
    value = _env_number(name, default, int)
    if value < 1:
        logger.warning("%s must be >= 1; defaulting to %s", name, default)
        return default
    return value


def _unit_float(name: str, default: float) -> float:
    return min(1.0, max(0.0, _env_number(name, default, float)))


@dataclass(frozen=True)
class AgentSettings:
    """Runtime limits for sessions and graph execution."""

    session_file: str = DEFAULT_SESSION_FILE
    max_sessions: int = DEFAULT_MAX_SESSIONS
    max_history_per_session: int = DEFAULT_MAX_HISTORY_PER_SESSION
    max_session_file_bytes: int = DEFAULT_MAX_SESSION_FILE_BYTES
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    clarify_confidence: float = DEFAULT_CLARIFY_CONFIDENCE

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """Build settings from SENTINEL_* environment variables."""
        return cls(
            session_file=get_env_str("SENTINEL_SESSION_FILE", DEFAULT_SESSION_FILE),
            max_sessions=_positive_int("SENTINEL_MAX_SESSIONS", DEFAULT_MAX_SESSIONS),
            max_history_per_session=_positive_int(
                "SENTINEL_MAX_HISTORY_PER_SESSION", DEFAULT_MAX_HISTORY_PER_SESSION
            ),
            max_session_file_bytes=_positive_int(
                "SENTINEL_MAX_SESSION_FILE_BYTES", DEFAULT_MAX_SESSION_FILE_BYTES
            ),
            max_iterations=_positive_int("SENTINEL_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS),
            clarify_confidence=_unit_float(
                "SENTINEL_CLARIFY_CONFIDENCE", DEFAULT_CLARIFY_CONFIDENCE
            ),
        )
