"""
Infrastructure initialization and bootstrap.

Explicit composition root: builds the backends, the describe queue and the
playback engine from configuration. Owned by whoever creates it (the
FastAPI lifespan, or a test) and torn down with aclose().
"""

import logging
from typing import Any, Callable, Optional

from inference import DescribeBackend, as_producer, decode_payload
from playback import PlaybackEngine, QuotaGuard, build_speech_producers
from playback.media import PlayerFactory
from runtime.errors import ErrorHandler, ExhaustedError, InputError
from runtime.queue import TaskQueue, WorkItem
from services.tts import TTSBackend
from tracing import Tracer, create_tracer

from .config import InfraConfig, get_config
from .results import ResultStore

logger = logging.getLogger(__name__)


class InfraBootstrap:
    """
    Bootstrap infrastructure based on configuration.

    Args:
        config: Infrastructure configuration (defaults to the environment)
        player_factory: Media player override (tests)
        engine_factory: Device synthesizer override (tests)
    """

    def __init__(
        self,
        config: Optional[InfraConfig] = None,
        player_factory: Optional[PlayerFactory] = None,
        engine_factory: Optional[Callable[[], Any]] = None,
    ):
        self.config = config or get_config()
        self.tracer: Tracer = create_tracer(self.config.tracer_backend)
        self.error_handler = ErrorHandler()
        self.results = ResultStore()

        self.describe_backend: DescribeBackend = self.config.create_describe_backend()
        self.fallback_describe_backend: Optional[DescribeBackend] = self.config.create_fallback_describe_backend()
        self.tts_backend: Optional[TTSBackend] = self.config.create_tts_backend()
        self.quota_guard = QuotaGuard(cooldown_s=self.config.tts_quota_cooldown_s)
        self.fallback_notices = 0

        fallback_operation = None
        if self.fallback_describe_backend is not None:
            fallback_operation = as_producer(self.fallback_describe_backend)

        self.queue = TaskQueue(
            as_producer(self.describe_backend, timeout_s=self.config.describe_timeout_s),
            self.config.create_queue_options(),
            fallback_operation=fallback_operation,
            on_error=self._on_describe_error,
            on_fallback_used=self._on_fallback_used,
            on_result=self._on_describe_result,
            on_exhausted=self._on_describe_exhausted,
            tracer=self.tracer,
            error_handler=self.error_handler,
            name="describe_queue",
        )

        self.playback: Optional[PlaybackEngine] = None
        try:
            producers = build_speech_producers(
                self.tts_backend,
                local_enabled=self.config.local_speech_enabled,
                quota_guard=self.quota_guard,
                player_factory=player_factory,
                engine_factory=engine_factory,
                timeout_s=self.config.tts_timeout_s,
            )
        except ValueError as e:
            logger.warning(f"Speech playback disabled: {e}")
        else:
            self.playback = PlaybackEngine(
                producers,
                config=self.config.create_tts_config(),
                sample_interval_ms=self.config.playback_sample_interval_ms,
                tracer=self.tracer,
                error_handler=self.error_handler,
            )

        logger.info(f"Infrastructure ready: {self!r}")

    # ── Describe ──────────────────────────────────────────────────────────

    def submit_image(self, payload: Any) -> str:
        """
        Validate and enqueue an image for description.

        Raises:
            InputError: payload empty or undecodable
        """
        try:
            image, _ = decode_payload(payload)
        except ValueError as e:
            raise InputError(str(e)) from e
        item_id = self.queue.submit(image)
        self.results.mark_pending(item_id)
        return item_id

    def _on_describe_error(self, error: BaseException, item: WorkItem) -> None:
        self.results.record_attempt_failure(item.id)
        self.error_handler.handle_error(
            error,
            component="describe_queue",
            action="describe_image",
            additional_data={"item_id": item.id, "retry_count": item.retry_count},
        )

    def _on_fallback_used(self) -> None:
        self.fallback_notices += 1

    def _on_describe_result(self, item: WorkItem, description: str, degraded: bool) -> None:
        self.results.record_success(item.id, description, degraded)

    def _on_describe_exhausted(self, item: WorkItem, error: ExhaustedError) -> None:
        self.results.record_failure(item.id, str(error))

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def aclose(self) -> None:
        """Tear down engines first, then close backend connections."""
        await self.queue.aclose()
        if self.playback is not None:
            await self.playback.aclose()
        for backend in (self.describe_backend, self.fallback_describe_backend, self.tts_backend):
            if backend is None:
                continue
            try:
                await backend.aclose()
            except Exception as e:
                logger.warning(f"Closing {type(backend).__name__} failed: {e}")

    def __repr__(self) -> str:
        """String representation showing configured backends."""
        return (
            f"InfraBootstrap(describe={self.config.describe_backend}, "
            f"fallback={'local' if self.fallback_describe_backend else 'disabled'}, "
            f"tts={self.config.tts_backend if self.config.tts_enabled else 'disabled'}, "
            f"device_speech={'enabled' if self.config.local_speech_enabled else 'disabled'}, "
            f"tracer={self.config.tracer_backend})"
        )


def bootstrap_infrastructure(config: Optional[InfraConfig] = None, **kwargs) -> InfraBootstrap:
    """
    Bootstrap all infrastructure.

    Args:
        config: Optional custom configuration

    Returns:
        New InfraBootstrap instance
    """
    return InfraBootstrap(config, **kwargs)
