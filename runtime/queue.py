"""
Asynchronous processing queue for rate-limited remote work.

The queue owns:
- an ordered set of unresolved WorkItems (FIFO by submission)
- a set of claimed item ids (in-flight attempts)
- one pending scheduling timer
- an "alive" flag checked before any mutation from an async continuation

Scheduling model: single event loop. A scheduling pass claims the oldest
unclaimed items while fewer than max_concurrent are in flight. Every
completion (success, fallback, retry or exhaustion) releases the claim and
closes the start gate for inter_completion_delay_ms, which spaces calls to
the remote dependency without delaying the first item.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from uuid import uuid4

from pydantic import BaseModel, Field

from runtime.errors import ErrorHandler, ExhaustedError, InputError, QueueDisposedError
from runtime.retry import AttemptOutcome, Decision, RetryableOperation
from tracing import Tracer, TraceMetadata, emit_event

logger = logging.getLogger(__name__)


class QueueOptions(BaseModel):
    """Queue configuration. Invalid values are rejected at construction."""

    max_concurrent: int = Field(default=1, ge=1, description="In-flight attempts ceiling")
    retry_limit: int = Field(default=3, ge=0, description="Failed attempts before an item is dropped")
    inter_completion_delay_ms: float = Field(default=1000, ge=0, description="Spacing after each completion")
    fallback_enabled: bool = Field(default=True, description="Allow the one-shot fallback operation")

    @property
    def inter_completion_delay_s(self) -> float:
        return self.inter_completion_delay_ms / 1000.0


@dataclass(frozen=True)
class WorkItem:
    """A queue entry. Only retry_count ever changes, by replacement."""

    id: str
    payload: Any
    submitted_at: datetime
    retry_count: int = 0


@dataclass
class QueueStats:
    """Counters and sizes at a point in time."""

    pending: int
    in_flight: int
    processed_count: int
    error_count: int
    exhausted_count: int
    fallback_active: bool
    is_processing: bool
    options: Dict[str, Any] = field(default_factory=dict)


ErrorCallback = Callable[[BaseException, WorkItem], None]
ResultCallback = Callable[[WorkItem, Any, bool], None]
ExhaustedCallback = Callable[[WorkItem, ExhaustedError], None]


class TaskQueue:
    """
    Bounded-concurrency, rate-limited queue with retry and one-shot fallback.

    Usage:
        queue = TaskQueue(describe, QueueOptions(retry_limit=2), fallback_operation=local_describe,
                          on_result=store_description)
        item_id = queue.submit(image_bytes)
        await queue.join()
        queue.dispose()

    Callbacks:
        on_error(error, item)            every failed primary attempt
        on_fallback_used()               fallback produced a degraded result
        on_result(item, value, degraded) item resolved successfully
        on_exhausted(item, error)        item dropped after retry_limit failures

    Callback failures are logged and never affect the queue.
    """

    def __init__(
        self,
        operation: Callable[[Any], Awaitable[Any]],
        options: Optional[QueueOptions] = None,
        fallback_operation: Optional[Callable[[Any], Awaitable[Any]]] = None,
        on_error: Optional[ErrorCallback] = None,
        on_fallback_used: Optional[Callable[[], None]] = None,
        on_result: Optional[ResultCallback] = None,
        on_exhausted: Optional[ExhaustedCallback] = None,
        tracer: Optional[Tracer] = None,
        error_handler: Optional[ErrorHandler] = None,
        name: str = "task_queue",
    ):
        self.options = options or QueueOptions()
        self.name = name
        self._operation = RetryableOperation(
            operation,
            retry_limit=self.options.retry_limit,
            fallback=fallback_operation,
            fallback_enabled=self.options.fallback_enabled,
        )
        self.on_error = on_error
        self.on_fallback_used = on_fallback_used
        self.on_result = on_result
        self.on_exhausted = on_exhausted
        self.tracer = tracer
        self.error_handler = error_handler

        self._items: Dict[str, WorkItem] = {}
        self._claimed: Set[str] = set()
        self._fallback_used: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._timer: Optional[asyncio.TimerHandle] = None
        self._resume_at = 0.0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._alive = True
        self._idle = asyncio.Event()
        self._idle.set()

        self.processed_count = 0
        self.error_count = 0
        self.exhausted_count = 0
        self.fallback_active = False

    # ── Public API ─────────────────────────────────────────────────────────

    def submit(self, payload: Any) -> str:
        """
        Enqueue a payload and return its id immediately.

        Processing starts on a later scheduling pass of the running loop.

        Raises:
            InputError: empty payload
            QueueDisposedError: queue already disposed
        """
        if not self._alive:
            raise QueueDisposedError(f"{self.name} has been disposed")
        if payload is None or (hasattr(payload, "__len__") and len(payload) == 0):
            raise InputError("Empty payload")

        loop = self._get_loop()
        item = WorkItem(id=f"queue_{uuid4().hex}", payload=payload, submitted_at=datetime.now())
        self._items[item.id] = item
        self._idle.clear()
        self._emit("queue_item_submitted", item, {"pending": len(self._items)})
        logger.debug(f"[{self.name}] submitted {item.id}")

        loop.call_soon(self._request_pass)
        return item.id

    def snapshot(self) -> List[WorkItem]:
        """Unresolved items not currently claimed, in submission order."""
        return [item for item in self._items.values() if item.id not in self._claimed]

    def get(self, item_id: str) -> Optional[WorkItem]:
        return self._items.get(item_id)

    @property
    def in_flight(self) -> int:
        return len(self._claimed)

    @property
    def is_processing(self) -> bool:
        return bool(self._items)

    @property
    def alive(self) -> bool:
        return self._alive

    def stats(self) -> QueueStats:
        return QueueStats(
            pending=len(self._items) - len(self._claimed),
            in_flight=len(self._claimed),
            processed_count=self.processed_count,
            error_count=self.error_count,
            exhausted_count=self.exhausted_count,
            fallback_active=self.fallback_active,
            is_processing=self.is_processing,
            options=self.options.model_dump(),
        )

    async def join(self) -> None:
        """Wait until every submitted item is resolved (or the queue is disposed)."""
        await self._idle.wait()

    def dispose(self) -> None:
        """
        Tear down: cancel the pending timer and every in-flight attempt.

        Late continuations become no-ops. Safe to call more than once.
        """
        if not self._alive:
            return
        self._alive = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in self._tasks.values():
            task.cancel()
        if self._items:
            logger.warning(f"[{self.name}] disposed with {len(self._items)} unresolved item(s)")
        self._tasks.clear()
        self._claimed.clear()
        self._items.clear()
        self._fallback_used.clear()
        self._idle.set()

    async def aclose(self) -> None:
        """Dispose and wait for cancelled attempts to unwind."""
        tasks = list(self._tasks.values())
        self.dispose()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Scheduling ─────────────────────────────────────────────────────────

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _request_pass(self, delay: float = 0.0) -> None:
        """Arm the scheduling timer, keeping the earliest pending pass."""
        if not self._alive:
            return
        loop = self._get_loop()
        when = loop.time() + delay
        if self._timer is not None:
            if self._timer.when() <= when:
                return
            self._timer.cancel()
        self._timer = loop.call_at(when, self._run_pass)

    def _run_pass(self) -> None:
        self._timer = None
        if not self._alive:
            return

        wait = self._resume_at - self._get_loop().time()
        if wait > 0:
            self._request_pass(wait)
            return

        while len(self._claimed) < self.options.max_concurrent:
            item = next((i for i in self._items.values() if i.id not in self._claimed), None)
            if item is None:
                break
            self._claim(item)

    def _claim(self, item: WorkItem) -> None:
        self._claimed.add(item.id)
        self._emit("queue_item_claimed", item, {
            "retry_count": item.retry_count,
            "in_flight": len(self._claimed),
        })
        self._tasks[item.id] = self._get_loop().create_task(self._process(item.id))

    async def _process(self, item_id: str) -> None:
        item = self._items[item_id]
        outcome = await self._operation.attempt(
            item.payload,
            retry_count=item.retry_count,
            fallback_used=item_id in self._fallback_used,
        )
        if not self._alive:
            return

        try:
            self._apply(item, outcome)
        finally:
            self._claimed.discard(item_id)
            self._tasks.pop(item_id, None)
            delay = self.options.inter_completion_delay_s
            self._resume_at = self._get_loop().time() + delay
            if self._items:
                self._request_pass(delay)
            else:
                self._idle.set()

    # ── Outcome handling ───────────────────────────────────────────────────

    def _apply(self, item: WorkItem, outcome: AttemptOutcome) -> None:
        decision = outcome.decision

        if decision is Decision.SUCCESS:
            self._remove(item)
            self.processed_count += 1
            self.fallback_active = False
            self._emit("queue_item_succeeded", item, {"retry_count": item.retry_count})
            self._notify(self.on_result, item, outcome.result, False)
            return

        if decision is Decision.FALLBACK:
            self._remove(item)
            self.processed_count += 1
            self.fallback_active = True
            logger.warning(f"[{self.name}] {item.id} resolved by fallback (degraded result)")
            self._emit("queue_fallback_used", item, {"error_type": _error_type(outcome.error)})
            self._notify(self.on_error, outcome.error, item)
            self._notify(self.on_fallback_used)
            self._notify(self.on_result, item, outcome.result, True)
            return

        if outcome.fallback_attempted:
            self._fallback_used.add(item.id)
        self.error_count += 1
        self._notify(self.on_error, outcome.error, item)

        if decision is Decision.RETRY:
            self._items[item.id] = replace(item, retry_count=outcome.retry_count)
            self._emit("queue_item_retry", item, {
                "retry_count": outcome.retry_count,
                "error_type": _error_type(outcome.error),
            })
            logger.info(
                f"[{self.name}] {item.id} will retry "
                f"({outcome.retry_count}/{self.options.retry_limit})"
            )
            return

        dropped = replace(item, retry_count=outcome.retry_count)
        self._remove(item)
        self.exhausted_count += 1
        error = ExhaustedError(item.id, outcome.retry_count, outcome.error)
        self._emit("queue_item_exhausted", item, {"retry_count": outcome.retry_count})
        if self.error_handler is not None:
            self.error_handler.handle_error(error, component=self.name, action="describe_image",
                                            additional_data={"item_id": item.id})
        else:
            logger.error(f"[{self.name}] {error}")
        self._notify(self.on_exhausted, dropped, error)

    def _remove(self, item: WorkItem) -> None:
        self._items.pop(item.id, None)
        self._fallback_used.discard(item.id)

    # ── Helpers ────────────────────────────────────────────────────────────

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"[{self.name}] callback {getattr(callback, '__name__', callback)} failed: {e}",
                         exc_info=True)

    def _emit(self, name: str, item: WorkItem, metadata: Dict[str, Any]) -> None:
        emit_event(self.tracer, name, metadata, TraceMetadata(trace_id=item.id, component=self.name))


def _error_type(error: Optional[BaseException]) -> Optional[str]:
    if error is None:
        return None
    return getattr(error, "error_type", type(error).__name__)
