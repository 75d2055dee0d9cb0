from sentinel_agent.sessions.store import SCHEMA_VERSION, SessionStore

__all__ = ["SCHEMA_VERSION", "SessionStore"]
