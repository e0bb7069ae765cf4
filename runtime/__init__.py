"""
Runtime engines for unreliable, rate-limited remote work.

- RetryableOperation: one attempt with an explicit outcome decision
- FallbackResolver: ordered multi-tier producer resolution
- TaskQueue: bounded-concurrency, rate-limited processing queue

Example usage:
    from runtime import TaskQueue, QueueOptions

    queue = TaskQueue(describe, QueueOptions(max_concurrent=1, retry_limit=2))
    item_id = queue.submit(image_bytes)
"""

from .errors import (
    AloudError,
    InputError,
    ProducerError,
    NetworkError,
    QuotaExceededError,
    UnsupportedConfigurationError,
    ExhaustedError,
    TierFailure,
    FallbackExhaustedError,
    ResourceError,
    QueueDisposedError,
    ErrorHandler,
    ErrorReport,
    classify_failure,
    playback_failure_message,
)
from .retry import Decision, AttemptOutcome, RetryableOperation
from .fallback import Producer, FallbackResult, FallbackResolver
from .queue import QueueOptions, QueueStats, WorkItem, TaskQueue

__all__ = [
    "AloudError",
    "InputError",
    "ProducerError",
    "NetworkError",
    "QuotaExceededError",
    "UnsupportedConfigurationError",
    "ExhaustedError",
    "TierFailure",
    "FallbackExhaustedError",
    "ResourceError",
    "QueueDisposedError",
    "ErrorHandler",
    "ErrorReport",
    "classify_failure",
    "playback_failure_message",
    "Decision",
    "AttemptOutcome",
    "RetryableOperation",
    "Producer",
    "FallbackResult",
    "FallbackResolver",
    "QueueOptions",
    "QueueStats",
    "WorkItem",
    "TaskQueue",
]
