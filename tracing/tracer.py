"""
Tool-agnostic tracing abstraction.

Tracing is strictly passive:
- Never influences execution
- Never mutates engine state
- Failures are silent and non-fatal
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from tracing.store import EventStore

logger = logging.getLogger(__name__)


@dataclass
class TraceMetadata:
    """Identity attached to every recorded event."""

    trace_id: str  # Mandatory: work item id or playback request id
    component: Optional[str] = None  # "task_queue", "playback_engine", ...


class Tracer(ABC):
    """
    Abstract tracing interface.

    All implementations MUST guarantee:
    - No control flow influence
    - Non-fatal failures (never raise)
    """

    @abstractmethod
    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        """
        Record a point-in-time event.

        Args:
            name: Event name (e.g., "queue_item_claimed", "playback_started")
            metadata: Event data (status, tier, retry_count, ...)
            trace_metadata: Trace identity
        """
        pass

    @abstractmethod
    def is_enabled(self) -> bool:
        """Check if tracing is enabled."""
        pass


class NoOpTracer(Tracer):
    """Satisfies the Tracer interface but does nothing."""

    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        pass

    def is_enabled(self) -> bool:
        return False


class LoggingTracer(Tracer):
    """Writes every event to the log at DEBUG level."""

    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        try:
            logger.debug(
                f"[trace] {name} trace_id={trace_metadata.trace_id} "
                f"component={trace_metadata.component} {metadata}"
            )
        except Exception:
            pass

    def is_enabled(self) -> bool:
        return True


class InMemoryTracer(Tracer):
    """Keeps events in a bounded EventStore for local inspection and tests."""

    def __init__(self, store: Optional[EventStore] = None):
        self.store = store or EventStore()

    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        self.store.record_event(
            name=name,
            trace_id=trace_metadata.trace_id,
            component=trace_metadata.component,
            metadata=metadata,
        )

    def is_enabled(self) -> bool:
        return True


def emit_event(
    tracer: Optional[Tracer],
    name: str,
    metadata: Dict[str, Any],
    trace_metadata: TraceMetadata,
) -> None:
    """Safely emit a trace event. Never raises."""
    if tracer is None:
        return
    try:
        tracer.record_event(name, metadata, trace_metadata)
    except Exception:
        pass
