"""
Bounded in-memory store of description outcomes, keyed by queue item id.

Fed by the queue callbacks; read by the HTTP API.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

logger = logging.getLogger(__name__)

ResultStatus = Literal["pending", "completed", "failed"]


@dataclass
class DescriptionResult:
    """Outcome of one submitted image."""
    id: str
    status: ResultStatus = "pending"
    description: Optional[str] = None
    degraded: bool = False
    error: Optional[str] = None
    attempts: int = 0  # failed attempts
    submitted_at: str = ""
    completed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ResultStore:
    """Thread-safe, bounded store; the oldest results are evicted first."""

    def __init__(self, max_results: int = 200):
        self.max_results = max_results
        self._results: "OrderedDict[str, DescriptionResult]" = OrderedDict()
        self._lock = threading.RLock()

    def mark_pending(self, item_id: str) -> None:
        with self._lock:
            self._results[item_id] = DescriptionResult(id=item_id, submitted_at=datetime.now().isoformat())
            while len(self._results) > self.max_results:
                self._results.popitem(last=False)

    def record_attempt_failure(self, item_id: str) -> None:
        with self._lock:
            result = self._results.get(item_id)
            if result is not None:
                result.attempts += 1

    def record_success(self, item_id: str, description: str, degraded: bool) -> None:
        with self._lock:
            result = self._results.get(item_id) or DescriptionResult(id=item_id)
            result.status = "completed"
            result.description = description
            result.degraded = degraded
            result.completed_at = datetime.now().isoformat()
            self._results[item_id] = result

    def record_failure(self, item_id: str, error: str) -> None:
        with self._lock:
            result = self._results.get(item_id) or DescriptionResult(id=item_id)
            result.status = "failed"
            result.error = error
            result.completed_at = datetime.now().isoformat()
            self._results[item_id] = result

    def get(self, item_id: str) -> Optional[DescriptionResult]:
        with self._lock:
            return self._results.get(item_id)

    def recent(self, limit: int = 20) -> List[DescriptionResult]:
        """Most recent first."""
        with self._lock:
            return list(reversed(self._results.values()))[:limit]

    def clear(self) -> None:
        with self._lock:
            self._results.clear()
