"""
Ordered multi-tier fallback over asynchronous producers.

Producers are attempted strictly in declared order, each awaited to
completion before the next starts. The first success wins and the caller
learns which tier produced it, so degraded results can be reported
separately from full failures.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar, Union

from runtime.errors import FallbackExhaustedError, TierFailure
from tracing import Tracer, TraceMetadata, emit_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProducerFn = Callable[..., Awaitable[Any]]


@dataclass
class Producer:
    """A named producer function."""

    name: str
    fn: ProducerFn

    async def __call__(self, *args, **kwargs):
        return await self.fn(*args, **kwargs)


@dataclass
class FallbackResult(Generic[T]):
    """Outcome of a successful resolution."""

    value: T
    tier: int
    producer: str
    failures: List[TierFailure] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when a non-primary producer satisfied the request."""
        return self.tier > 0


def _as_producer(candidate: Union[Producer, ProducerFn], index: int) -> Producer:
    if isinstance(candidate, Producer):
        return candidate
    name = getattr(candidate, "name", None) or getattr(candidate, "__name__", None) or f"tier_{index}"
    return Producer(name=str(name), fn=candidate)


class FallbackResolver:
    """
    Resolve a request through a primary producer and ordered secondaries.

    Usage:
        resolver = FallbackResolver(remote_tts, [remote_tts_voice_only, device_speech])
        result = await resolver.resolve(text, config)
        result.value, result.tier, result.degraded

    Raises FallbackExhaustedError carrying every tier's failure when all fail.
    Cancellation is never swallowed.
    """

    def __init__(
        self,
        primary: Union[Producer, ProducerFn],
        secondaries: Sequence[Union[Producer, ProducerFn]] = (),
        tracer: Optional[Tracer] = None,
        component: str = "fallback_resolver",
    ):
        self.producers: List[Producer] = [
            _as_producer(p, i) for i, p in enumerate([primary, *secondaries])
        ]
        self.tracer = tracer
        self.component = component

    @classmethod
    def from_chain(cls, producers: Sequence[Union[Producer, ProducerFn]], **kwargs) -> "FallbackResolver":
        """Build a resolver from a non-empty ordered chain."""
        if not producers:
            raise ValueError("A fallback chain needs at least one producer")
        return cls(producers[0], producers[1:], **kwargs)

    @property
    def tier_names(self) -> List[str]:
        return [p.name for p in self.producers]

    async def resolve(self, *args, trace_id: str = "-", **kwargs) -> FallbackResult:
        failures: List[TierFailure] = []
        trace = TraceMetadata(trace_id=trace_id, component=self.component)

        for tier, producer in enumerate(self.producers):
            try:
                value = await producer(*args, **kwargs)
            except Exception as e:
                failures.append(TierFailure(tier=tier, producer=producer.name, error=e))
                logger.warning(f"Producer tier {tier} ({producer.name}) failed: {e}")
                emit_event(self.tracer, "fallback_tier_failed", {
                    "tier": tier,
                    "producer": producer.name,
                    "error_type": getattr(e, "error_type", type(e).__name__),
                }, trace)
                continue

            if tier > 0:
                logger.info(f"Request satisfied by fallback tier {tier} ({producer.name})")
            emit_event(self.tracer, "fallback_resolved", {
                "tier": tier,
                "producer": producer.name,
                "failed_tiers": len(failures),
            }, trace)
            return FallbackResult(value=value, tier=tier, producer=producer.name, failures=failures)

        logger.error(f"All {len(self.producers)} producer tier(s) failed")
        raise FallbackExhaustedError(failures)
