"""
Error taxonomy and error reporting for the runtime engines.

Taxonomy:
- Input errors        -> InputError (surfaced before any producer runs)
- Transient failures  -> ProducerError and subclasses (always caught)
- Exhaustion          -> ExhaustedError / FallbackExhaustedError (terminal per unit)
- Resource failures   -> ResourceError (acquired resource failed mid-playback)

ErrorHandler keeps a bounded record of recent failures for inspection.
It never raises and never influences control flow.
"""

import logging
import re
import threading
import traceback
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Sequence
from uuid import uuid4

logger = logging.getLogger(__name__)


ErrorCategory = Literal["tts", "describe", "network", "configuration", "unknown"]
ErrorSeverity = Literal["low", "medium", "high", "critical"]


class AloudError(Exception):
    """Base class for all errors raised by this package."""


class InputError(AloudError):
    """Request rejected before any producer was attempted."""


class ProducerError(AloudError):
    """A producer call failed. Always treated as retryable by the queue."""

    def __init__(self, message: str, error_type: str = "backend_unavailable",
                 producer: Optional[str] = None):
        super().__init__(message)
        self.error_type = error_type
        self.producer = producer


class NetworkError(ProducerError):
    """Remote producer unreachable or timed out."""

    def __init__(self, message: str, producer: Optional[str] = None):
        super().__init__(message, error_type="network_error", producer=producer)


class QuotaExceededError(ProducerError):
    """Remote producer refused the call for billing or quota reasons."""

    def __init__(self, message: str, producer: Optional[str] = None):
        super().__init__(message, error_type="insufficient_funds", producer=producer)


class UnsupportedConfigurationError(ProducerError):
    """Remote producer rejected the requested voice or engine."""

    def __init__(self, message: str, producer: Optional[str] = None):
        super().__init__(message, error_type="unsupported_voice", producer=producer)


class ExhaustedError(AloudError):
    """A work item hit its retry limit and was dropped."""

    def __init__(self, item_id: str, attempts: int, last_error: Optional[BaseException] = None):
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Item {item_id} dropped after {attempts} failed attempt(s){detail}")
        self.item_id = item_id
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class TierFailure:
    """One failed producer attempt inside a fallback chain."""

    tier: int
    producer: str
    error: BaseException

    def describe(self) -> str:
        return f"tier {self.tier} ({self.producer}): {self.error}"


class FallbackExhaustedError(AloudError):
    """Every producer in a fallback chain failed. Keeps all individual failures."""

    def __init__(self, failures: Sequence[TierFailure]):
        self.failures: List[TierFailure] = list(failures)
        reasons = "; ".join(f.describe() for f in self.failures) or "no producers configured"
        super().__init__(f"All producers failed: {reasons}")

    @property
    def errors(self) -> List[BaseException]:
        return [f.error for f in self.failures]


class ResourceError(AloudError):
    """An acquired playback resource reported a failure."""


class QueueDisposedError(AloudError):
    """Submission attempted after the queue was disposed."""


# ──────────────────────────────────────────────────────────────
# Failure classification
# ──────────────────────────────────────────────────────────────

_NETWORK_RE = re.compile(r"network|fetch|connection|connect|timeout|timed out|unreachable", re.I)
_CONFIG_RE = re.compile(r"voice|engine|unsupported", re.I)

FailureKind = Literal["network", "configuration", "unknown"]


def classify_failure(error: BaseException) -> FailureKind:
    """
    Classify a producer failure as network, unsupported configuration or unknown.

    Composite errors are classified by their individual failures; network
    wins over configuration when both are present.
    """
    if isinstance(error, FallbackExhaustedError):
        kinds = [classify_failure(e) for e in error.errors]
        if "network" in kinds:
            return "network"
        if "configuration" in kinds:
            return "configuration"
        return "unknown"

    if isinstance(error, NetworkError):
        return "network"
    if isinstance(error, UnsupportedConfigurationError):
        return "configuration"
    if isinstance(error, (ConnectionError, TimeoutError)):
        return "network"

    message = str(error)
    if _NETWORK_RE.search(message):
        return "network"
    if _CONFIG_RE.search(message):
        return "configuration"
    return "unknown"


_PLAYBACK_MESSAGES: Dict[FailureKind, str] = {
    "network": "Network error - check your connection",
    "configuration": "Unsupported voice or engine configuration",
    "unknown": "Speech generation failed",
}


def playback_failure_message(error: BaseException) -> str:
    """User-facing message for a failed speech request."""
    return _PLAYBACK_MESSAGES[classify_failure(error)]


# ──────────────────────────────────────────────────────────────
# Error reporting
# ──────────────────────────────────────────────────────────────


@dataclass
class ErrorReport:
    """Recorded failure (metadata only, no payloads)."""

    id: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    user_message: str
    component: Optional[str] = None
    action: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    error_type: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_CATEGORY_PATTERNS: Dict[ErrorCategory, List[re.Pattern]] = {
    "tts": [
        re.compile(r"tts|text.to.speech|speech|voice|audio|playback", re.I),
        re.compile(r"insufficient.funds|quota|billing", re.I),
    ],
    "describe": [
        re.compile(r"describe|image|vision|inference", re.I),
    ],
    "network": [
        re.compile(r"network|fetch|connection|timeout", re.I),
    ],
    "configuration": [
        re.compile(r"config|settings|invalid", re.I),
    ],
}


class ErrorHandler:
    """
    Categorizes, logs and keeps a bounded history of failures.

    Thread-safe. Never raises.
    """

    def __init__(self, max_reports: int = 50):
        self.max_reports = max_reports
        self._reports: deque = deque(maxlen=max_reports)
        self._lock = threading.RLock()

    def categorize(self, error: BaseException, component: Optional[str] = None) -> ErrorCategory:
        if isinstance(error, (NetworkError, ConnectionError, TimeoutError)):
            return "network"
        text = f"{type(error).__name__} {error} {component or ''}"
        for category, patterns in _CATEGORY_PATTERNS.items():
            if any(p.search(text) for p in patterns):
                return category
        return "unknown"

    def severity(self, error: BaseException, component: Optional[str] = None) -> ErrorSeverity:
        if isinstance(error, (ExhaustedError, FallbackExhaustedError)):
            return "high"
        if isinstance(error, ResourceError) or component == "playback_engine":
            return "high"
        if isinstance(error, QuotaExceededError):
            return "medium"
        if isinstance(error, InputError):
            return "low"
        if isinstance(error, ProducerError):
            return "medium"
        return "critical"

    @staticmethod
    def user_message(error: BaseException, category: ErrorCategory) -> str:
        message = str(error).lower()
        if category == "tts":
            if "insufficient" in message or "quota" in message:
                return "Speech service quota exceeded. Using device speech as fallback."
            if "voice" in message or "engine" in message:
                return "Selected voice unavailable. Switching to default voice."
            return "Speech service temporarily unavailable. Please try again."
        if category == "describe":
            if "rate" in message or "quota" in message:
                return "Image service is busy. Please wait a moment and try again."
            return "Unable to analyze image. Please try again."
        if category == "network":
            if "timeout" in message or "timed out" in message:
                return "Request timed out. Please check your internet connection."
            return "Network error occurred. Please check your connection."
        if category == "configuration":
            return "Configuration error detected. Settings have been reset to defaults."
        return "An unexpected error occurred. Please try again."

    def handle_error(
        self,
        error: BaseException,
        component: Optional[str] = None,
        action: Optional[str] = None,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Record a failure and log it.

        Returns:
            Generated error id
        """
        error_id = f"err_{uuid4().hex[:12]}"
        try:
            category = self.categorize(error, component)
            severity = self.severity(error, component)
            report = ErrorReport(
                id=error_id,
                message=str(error),
                category=category,
                severity=severity,
                user_message=self.user_message(error, category),
                component=component,
                action=action,
                error_type=getattr(error, "error_type", None),
                additional_data=dict(additional_data or {}),
            )
            with self._lock:
                self._reports.appendleft(report)

            log = logger.error if severity in ("high", "critical") else logger.warning
            log(
                f"[{category.upper()}] {severity.upper()} {error_id} "
                f"component={component} action={action}: {error}"
            )
            if severity == "critical":
                logger.debug("".join(traceback.format_exception(type(error), error, error.__traceback__)))
        except Exception as e:
            logger.debug(f"Failed to record error report: {e}")
        return error_id

    def recent_errors(self, limit: int = 10) -> List[ErrorReport]:
        with self._lock:
            return list(self._reports)[:limit]

    def error_stats(self) -> Dict[str, Any]:
        with self._lock:
            reports = list(self._reports)
        by_category: Dict[str, int] = {}
        by_severity: Dict[str, int] = {}
        for report in reports:
            by_category[report.category] = by_category.get(report.category, 0) + 1
            by_severity[report.severity] = by_severity.get(report.severity, 0) + 1
        return {"total": len(reports), "by_category": by_category, "by_severity": by_severity}

    def clear(self) -> None:
        with self._lock:
            self._reports.clear()
