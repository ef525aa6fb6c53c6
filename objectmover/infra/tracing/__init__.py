"""OpenTelemetry tracing utilities.

- get_tracer(): Get a tracer for creating custom spans
- add_span_event(): Add events to the current span
"""

from objectmover.infra.tracing.opentelemetry import add_span_event, get_tracer

__all__ = ["add_span_event", "get_tracer"]
