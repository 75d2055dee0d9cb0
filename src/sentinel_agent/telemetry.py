"""Telemetry service for graph execution tracing.

Wraps OpenTelemetry so the executor and nodes only deal with a small span
interface. Without `configure()` the global no-op tracer provider is used.
"""

import contextlib
import logging
import os
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from sentinel_agent.config import get_env_str

logger = logging.getLogger(__name__)

OTEL_SERVICE_NAME = get_env_str("OTEL_SERVICE_NAME", "sentinel-agent")

_MAX_ATTRIBUTE_CHARS = 1024


class SpanType(Enum):
    """Semantic span types mapping to OTEL concepts."""

    CHAIN = "CHAIN"
    AGENT_NODE = "AGENT_NODE"
    CHAT_MODEL = "CHAT_MODEL"
    PARSER = "PARSER"
    UNKNOWN = "UNKNOWN"


def _coerce(value: Any) -> Any:
    if isinstance(value, (bool, int, float)):
        return value
    if value is None:
        return "null"
    return str(value)[:_MAX_ATTRIBUTE_CHARS]


class TelemetrySpan:
    """Span handle exposed to callers."""

    def __init__(self, span: trace.Span):
        self._span = span

    def set_attribute(self, key: str, value: Any) -> None:
        self._span.set_attribute(key, _coerce(value))

    def set_attributes(self, attributes: Dict[str, Any]) -> None:
        for key, value in attributes.items():
            self.set_attribute(key, value)

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        self._span.add_event(name, {k: _coerce(v) for k, v in (attributes or {}).items()})

    def mark_error(self, message: str) -> None:
        self._span.set_status(Status(StatusCode.ERROR, message[:_MAX_ATTRIBUTE_CHARS]))


class Telemetry:
    """Process-wide tracing facade."""

    def __init__(self):
        self._configured = False

    def configure(self) -> None:
        """Install an SDK tracer provider once.

        Spans are exported over OTLP/HTTP only when OTEL_EXPORTER_OTLP_ENDPOINT
        is set, and never while pytest is running.
        """
        if self._configured:
            return

        provider = TracerProvider(resource=Resource.create({SERVICE_NAME: OTEL_SERVICE_NAME}))
        endpoint = get_env_str("OTEL_EXPORTER_OTLP_ENDPOINT")
        if endpoint and "PYTEST_CURRENT_TEST" not in os.environ:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
            logger.info(f"OTEL tracing enabled with endpoint: {endpoint}")
        else:
            logger.info("OTEL tracing configured without exporter")

        trace.set_tracer_provider(provider)
        self._configured = True

    @contextlib.contextmanager
    def start_span(
        self,
        name: str,
        span_type: SpanType = SpanType.UNKNOWN,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Iterator[TelemetrySpan]:
        """Start a span as the current span for the enclosed block."""
        tracer = trace.get_tracer("sentinel_agent")
        with tracer.start_as_current_span(name) as otel_span:
            span = TelemetrySpan(otel_span)
            span.set_attribute("span.type", span_type.value)
            if attributes:
                span.set_attributes(attributes)
            yield span


telemetry = Telemetry()
