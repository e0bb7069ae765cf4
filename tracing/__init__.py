"""Tracing infrastructure for observability."""

from tracing.store import EventStore, EventRecord
from tracing.tracer import (
    Tracer,
    TraceMetadata,
    NoOpTracer,
    LoggingTracer,
    InMemoryTracer,
    emit_event,
)
from tracing.tracer_factory import create_tracer, get_tracer_backend, get_tracer_config

__all__ = [
    "EventStore",
    "EventRecord",
    "Tracer",
    "TraceMetadata",
    "NoOpTracer",
    "LoggingTracer",
    "InMemoryTracer",
    "emit_event",
    "create_tracer",
    "get_tracer_backend",
    "get_tracer_config",
]
