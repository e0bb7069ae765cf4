"""
Tracer factory.

TRACER_BACKEND setting:
- "noop" (default): No observability
- "logging": Events written to the log at DEBUG
- "memory": Events kept in a bounded in-memory store
"""

import logging
import os

from tracing.tracer import Tracer, NoOpTracer, LoggingTracer, InMemoryTracer

logger = logging.getLogger(__name__)

_VALID_BACKENDS = {"noop", "logging", "memory"}


def get_tracer_backend() -> str:
    """Get the configured tracer backend (unknown values fall back to noop)."""
    backend = os.getenv("TRACER_BACKEND", "noop").lower().strip()
    if backend not in _VALID_BACKENDS:
        return "noop"
    return backend


def create_tracer(backend: str = None) -> Tracer:
    """
    Create a tracer instance.

    Always returns a valid Tracer; unknown backends downgrade to NoOpTracer.
    """
    backend = (backend or get_tracer_backend()).lower().strip()
    if backend == "logging":
        return LoggingTracer()
    if backend == "memory":
        return InMemoryTracer()
    if backend != "noop":
        logger.warning(f"Unknown tracer backend '{backend}', using noop")
    return NoOpTracer()


def get_tracer_config() -> dict:
    """Tracer configuration for health/debug endpoints."""
    backend = get_tracer_backend()
    return {"tracer_backend": backend, "enabled": backend != "noop"}
