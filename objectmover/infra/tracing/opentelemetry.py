"""OpenTelemetry helpers.

Only the OpenTelemetry API is used here. Until the host process installs an
SDK tracer provider every tracer is a no-op and spans are not recorded.
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace


def get_tracer(name: str) -> trace.Tracer:
    """Tracer for ``name``, usually the instrumenting module's ``__name__``.

    Example:
        tracer = get_tracer("objectmover.storage")
        with tracer.start_as_current_span("storage.plan") as span:
            span.set_attribute("object.size", size)
    """
    return trace.get_tracer(name)


def add_span_event(name: str, attributes: dict[str, Any] | None = None) -> None:
    """Attach an event to the active span when it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=attributes or {})
