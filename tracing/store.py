"""
In-memory event store for local development.

- Bounded size (FIFO eviction)
- Thread-safe
- No persistence
- Metadata only (never payloads, descriptions or spoken text)
"""

from collections import deque
from dataclasses import dataclass, asdict, field
from typing import Optional, Dict, Any, List
from datetime import datetime
import threading
import logging

logger = logging.getLogger(__name__)


@dataclass
class EventRecord:
    """A single recorded event."""
    name: str
    trace_id: str
    timestamp: str
    component: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class EventStore:
    """Thread-safe, bounded in-memory store for trace events."""

    def __init__(self, max_events: int = 500):
        self.max_events = max_events
        self.events: deque = deque(maxlen=max_events)
        self._lock = threading.RLock()

    def record_event(self, name: str, trace_id: str, component: Optional[str] = None,
                     metadata: Optional[Dict[str, Any]] = None) -> None:
        """Record an event."""
        try:
            with self._lock:
                self.events.append(EventRecord(
                    name=name,
                    trace_id=trace_id,
                    timestamp=datetime.now().isoformat(),
                    component=component,
                    metadata=dict(metadata or {}),
                ))
        except Exception as e:
            logger.debug(f"Failed to record event: {e}")

    def get_recent_events(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recent events, oldest first."""
        try:
            with self._lock:
                return [asdict(e) for e in list(self.events)[-limit:]]
        except Exception as e:
            logger.debug(f"Failed to get events: {e}")
            return []

    def names(self, trace_id: Optional[str] = None) -> List[str]:
        """Event names in recording order, optionally for one trace."""
        with self._lock:
            return [e.name for e in self.events if trace_id is None or e.trace_id == trace_id]

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self.events.clear()

    def get_stats(self) -> Dict[str, int]:
        """Get store statistics."""
        with self._lock:
            return {"events": len(self.events), "max_events": self.max_events}
