"""
Single-attempt execution with bounded retry bookkeeping.

RetryableOperation runs one attempt of a unit of work (primary call, plus
the one-shot fallback when eligible) and classifies the outcome into an
explicit Decision. It never sleeps and never loops: rescheduling is the
caller's job (see runtime.queue.TaskQueue).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Operation = Callable[[Any], Awaitable[Any]]


class Decision(str, Enum):
    """What the owner must do with the unit of work after an attempt."""

    SUCCESS = "success"      # primary succeeded: remove
    FALLBACK = "fallback"    # primary failed, fallback succeeded: remove (degraded)
    RETRY = "retry"          # failed, retries left: make eligible again
    EXHAUSTED = "exhausted"  # failed, retry limit reached: drop


@dataclass
class AttemptOutcome:
    """Result of one attempt."""

    decision: Decision
    retry_count: int                                # retry count after this attempt
    result: Any = None
    error: Optional[BaseException] = None           # primary failure
    fallback_error: Optional[BaseException] = None  # fallback failure, if tried
    fallback_attempted: bool = False

    @property
    def resolved(self) -> bool:
        """True when the unit leaves the queue."""
        return self.decision in (Decision.SUCCESS, Decision.FALLBACK, Decision.EXHAUSTED)


def classify_failure_decision(retry_count: int, retry_limit: int) -> Decision:
    """Decide between RETRY and EXHAUSTED for a failure raising the count to retry_count."""
    return Decision.EXHAUSTED if retry_count >= retry_limit else Decision.RETRY


class RetryableOperation:
    """
    Wrap an async operation with bounded retries and a one-shot fallback.

    Fallback is eligible only when enabled, configured, not yet used for
    this unit, and this is the unit's first attempt (retry_count == 0).
    Every exception from the primary is treated as retryable.
    """

    def __init__(
        self,
        operation: Operation,
        retry_limit: int = 3,
        fallback: Optional[Operation] = None,
        fallback_enabled: bool = True,
    ):
        if retry_limit < 0:
            raise ValueError("retry_limit must be >= 0")
        self.operation = operation
        self.retry_limit = retry_limit
        self.fallback = fallback
        self.fallback_enabled = fallback_enabled

    def fallback_eligible(self, retry_count: int, fallback_used: bool) -> bool:
        return (
            self.fallback_enabled
            and self.fallback is not None
            and not fallback_used
            and retry_count == 0
        )

    async def attempt(self, payload: Any, retry_count: int = 0, fallback_used: bool = False) -> AttemptOutcome:
        """
        Run one attempt.

        Args:
            payload: Work payload passed to the operation
            retry_count: Failed attempts so far for this unit
            fallback_used: Whether the fallback already ran for this unit

        Returns:
            AttemptOutcome with the explicit decision
        """
        try:
            result = await self.operation(payload)
        except Exception as e:
            primary_error = e
        else:
            return AttemptOutcome(decision=Decision.SUCCESS, retry_count=retry_count, result=result)

        logger.warning(f"Primary operation failed (attempt {retry_count + 1}): {primary_error}")

        fallback_error: Optional[BaseException] = None
        attempted = False
        if self.fallback_eligible(retry_count, fallback_used):
            attempted = True
            try:
                result = await self.fallback(payload)
            except Exception as e:
                fallback_error = e
                logger.warning(f"Fallback operation also failed: {e}")
            else:
                return AttemptOutcome(
                    decision=Decision.FALLBACK,
                    retry_count=retry_count,
                    result=result,
                    error=primary_error,
                    fallback_attempted=True,
                )

        new_count = retry_count + 1
        return AttemptOutcome(
            decision=classify_failure_decision(new_count, self.retry_limit),
            retry_count=new_count,
            error=primary_error,
            fallback_error=fallback_error,
            fallback_attempted=attempted,
        )
