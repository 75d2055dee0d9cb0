"""Unit test environment helpers."""

import pytest

SENTINEL_ENV_VARS = (
    "SENTINEL_SESSION_FILE",
    "SENTINEL_MAX_SESSIONS",
    "SENTINEL_MAX_HISTORY_PER_SESSION",
    "SENTINEL_MAX_SESSION_FILE_BYTES",
    "SENTINEL_MAX_ITERATIONS",
    "SENTINEL_CLARIFY_CONFIDENCE",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
)


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Clear agent settings so tests start from the built-in defaults."""
    for name in SENTINEL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
