"""
PlaybackEngine: speech playback state machine.

States:
  idle -> loading -> playing -> idle     (ended, stop, new play, teardown)
                  -> error               (every producer failed, or the
                                          acquired resource failed)

The engine exclusively owns at most one PlaybackResource. Starting a new
request always releases the previous resource first, synchronously, and a
generation counter turns any late result of an abandoned request into a
release-and-return.

Failures never propagate out of play/stop/seek/set_volume; they are
observable only through the state.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from typing import Any, Callable, Dict, Literal, Optional, Sequence, Union
from uuid import uuid4

from playback.resource import PlaybackResource
from playback.voices import DEFAULT_TTS_CONFIG, TTSConfig, resolve_effective_config
from runtime.errors import ErrorHandler, FallbackExhaustedError, ResourceError, playback_failure_message
from runtime.fallback import FallbackResolver, Producer
from tracing import Tracer, TraceMetadata, emit_event

logger = logging.getLogger(__name__)

PlaybackStatus = Literal["idle", "loading", "playing", "error"]

NO_TEXT_MESSAGE = "No text provided for speech"
PLAYBACK_FAILED_MESSAGE = "Audio playback failed"


@dataclass(frozen=True)
class PlaybackState:
    """Published playback state. Replaced, never mutated."""

    status: PlaybackStatus = "idle"
    current_time: float = 0.0
    duration: float = 0.0
    error_message: Optional[str] = None
    producer: Optional[str] = None
    tier: Optional[int] = None
    degraded: bool = False
    voice_substituted: bool = False

    @property
    def progress(self) -> float:
        if self.duration <= 0:
            return 0.0
        return min(100.0, max(0.0, self.current_time / self.duration * 100.0))

    @property
    def is_playing(self) -> bool:
        return self.status == "playing"

    @property
    def is_loading(self) -> bool:
        return self.status == "loading"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["progress"] = self.progress
        return data


class PlaybackEngine:
    """
    Plays text through an ordered chain of speech producers.

    Usage:
        engine = PlaybackEngine(build_speech_producers(tts_backend))
        await engine.play("Hello there", config)
        engine.seek(2.5)
        engine.stop()
        await engine.aclose()

    Callbacks:
        on_play_start()          playback started
        on_play_end()            playback reached the end
        on_state_change(state)   every published state
    """

    def __init__(
        self,
        producers: Sequence[Union[Producer, Callable]],
        config: Optional[TTSConfig] = None,
        sample_interval_ms: float = 100,
        on_play_start: Optional[Callable[[], None]] = None,
        on_play_end: Optional[Callable[[], None]] = None,
        on_state_change: Optional[Callable[[PlaybackState], None]] = None,
        tracer: Optional[Tracer] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self._resolver = FallbackResolver.from_chain(producers, tracer=tracer, component="playback_engine")
        self._config = config or DEFAULT_TTS_CONFIG
        self.sample_interval_s = sample_interval_ms / 1000.0
        self.on_play_start = on_play_start
        self.on_play_end = on_play_end
        self.on_state_change = on_state_change
        self.tracer = tracer
        self.error_handler = error_handler

        self._state = PlaybackState()
        self._resource: Optional[PlaybackResource] = None
        self._handlers: Dict[str, Callable] = {}
        self._sampler: Optional[asyncio.Task] = None
        self._generation = 0
        self._alive = True
        self._trace_id = "-"

    # ── Read side ─────────────────────────────────────────────────────────

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def config(self) -> TTSConfig:
        return self._config

    @property
    def producer_names(self):
        return self._resolver.tier_names

    @property
    def has_resource(self) -> bool:
        return self._resource is not None

    @property
    def sampling(self) -> bool:
        return self._sampler is not None and not self._sampler.done()

    @property
    def alive(self) -> bool:
        return self._alive

    # ── Transport ─────────────────────────────────────────────────────────

    async def play(self, text: str, config: Optional[TTSConfig] = None) -> None:
        """
        Speak text, replacing whatever is currently playing.

        A config passed here becomes the engine's config for later requests.
        """
        if not self._alive:
            logger.debug("play() after teardown ignored")
            return
        if config is not None:
            self._config = config

        if not text or not text.strip():
            # error is terminal: nothing may keep playing or sampling behind it
            self._generation += 1
            self._teardown()
            self._set_state(status="error", current_time=0.0, error_message=NO_TEXT_MESSAGE)
            self._emit("playback_failed", {"reason": "empty_text"})
            return

        self._teardown()
        self._generation += 1
        generation = self._generation
        self._trace_id = f"speech_{uuid4().hex[:12]}"

        effective, substituted = resolve_effective_config(self._config)
        self._set_state(
            status="loading",
            current_time=0.0,
            duration=0.0,
            error_message=None,
            producer=None,
            tier=None,
            degraded=False,
            voice_substituted=substituted,
        )
        self._emit("playback_loading", {
            "text_length": len(text),
            "engine": effective.engine,
            "voice": effective.voice.name,
            "voice_substituted": substituted,
        })

        try:
            result = await self._resolver.resolve(text, effective, trace_id=self._trace_id)
        except FallbackExhaustedError as e:
            if not self._is_current(generation):
                return
            message = playback_failure_message(e)
            logger.error(f"Speech generation failed: {e}")
            self._set_state(status="error", error_message=message)
            self._report(e, action="synthesize")
            self._emit("playback_failed", {"reason": "producers_exhausted", "message": message})
            return

        resource: PlaybackResource = result.value
        if not self._is_current(generation):
            logger.debug(f"Discarding stale resource from {result.producer}")
            resource.release()
            return

        self._acquire(resource)
        self._set_state(producer=result.producer, tier=result.tier, degraded=result.degraded)
        self._emit("playback_resolved", {
            "producer": result.producer,
            "tier": result.tier,
            "degraded": result.degraded,
        })

        try:
            await resource.play()
        except Exception as e:
            if self._resource is resource:
                self._fail_resource(resource, e)
            else:
                resource.release()
            return

        if not self._is_current(generation) or self._resource is not resource:
            return
        self._set_state(status="playing", duration=resource.duration or self._state.duration)
        self._start_sampling(resource)
        self._notify(self.on_play_start)
        self._emit("playback_started", {"producer": result.producer, "duration": resource.duration})

    def stop(self) -> None:
        """Stop playback and return to idle. Idempotent."""
        self._generation += 1
        had_resource = self._resource is not None
        self._teardown()
        if self._alive:
            self._set_state(status="idle", current_time=0.0, duration=0.0, error_message=None)
        if had_resource:
            self._emit("playback_stopped", {})

    def seek(self, time_s: float) -> None:
        """Move to time_s, clamped to [0, duration]."""
        resource = self._resource
        if resource is None or not resource.duration:
            return
        duration = resource.duration
        clamped = min(max(0.0, float(time_s)), duration)
        resource.current_time = clamped
        self._set_state(current_time=clamped, duration=duration)

    def set_volume(self, volume: float) -> None:
        """Set volume, clamped to [0, 1]."""
        if self._resource is None:
            return
        self._resource.volume = min(1.0, max(0.0, float(volume)))

    # ── Teardown ──────────────────────────────────────────────────────────

    def dispose(self) -> None:
        """Release the resource and cancel sampling; later callbacks become no-ops."""
        if not self._alive:
            return
        self._alive = False
        self._generation += 1
        self._teardown()
        self._state = PlaybackState()

    async def aclose(self) -> None:
        sampler = self._sampler
        self.dispose()
        if sampler is not None:
            await asyncio.gather(sampler, return_exceptions=True)

    # ── Resource handling ─────────────────────────────────────────────────

    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    def _acquire(self, resource: PlaybackResource) -> None:
        self._resource = resource

        def on_metadata():
            if self._resource is not resource:
                return
            changes = {"duration": resource.duration}
            if self._state.status == "loading":
                changes["status"] = "playing"
            self._set_state(**changes)

        def on_time_update():
            if self._resource is resource and self._state.status == "playing":
                self._sample(resource)

        def on_ended():
            if self._resource is not resource:
                return
            self._teardown()
            self._set_state(status="idle", current_time=0.0)
            self._notify(self.on_play_end)
            self._emit("playback_ended", {})

        def on_error(error=None):
            if self._resource is resource:
                self._fail_resource(resource, error)

        self._handlers = {
            "loadedmetadata": on_metadata,
            "timeupdate": on_time_update,
            "ended": on_ended,
            "error": on_error,
        }
        for event, handler in self._handlers.items():
            resource.add_event_listener(event, handler)

    def _teardown(self) -> None:
        """Stop sampling and release the active resource, if any."""
        self._stop_sampling()
        resource, self._resource = self._resource, None
        if resource is None:
            return
        for event, handler in self._handlers.items():
            resource.remove_event_listener(event, handler)
        self._handlers = {}
        resource.release()

    def _fail_resource(self, resource: PlaybackResource, error: Optional[BaseException]) -> None:
        logger.error(f"Audio playback error from {resource.name}: {error}")
        self._teardown()
        self._set_state(status="error", current_time=0.0, error_message=PLAYBACK_FAILED_MESSAGE)
        failure = error if isinstance(error, ResourceError) else ResourceError(f"Audio playback failed: {error}")
        self._report(failure, action="play")
        self._emit("playback_failed", {"reason": "resource_error", "producer": resource.name})

    # ── Progress sampling ─────────────────────────────────────────────────

    def _start_sampling(self, resource: PlaybackResource) -> None:
        self._stop_sampling()
        self._sampler = asyncio.get_running_loop().create_task(self._sample_loop(resource))

    def _stop_sampling(self) -> None:
        if self._sampler is not None:
            self._sampler.cancel()
            self._sampler = None

    async def _sample_loop(self, resource: PlaybackResource) -> None:
        while True:
            await asyncio.sleep(self.sample_interval_s)
            if not self._alive or self._resource is not resource or resource.paused:
                return
            self._sample(resource)

    def _sample(self, resource: PlaybackResource) -> None:
        self._set_state(current_time=resource.current_time, duration=resource.duration)

    # ── Helpers ───────────────────────────────────────────────────────────

    def _set_state(self, **changes) -> None:
        if not self._alive:
            return
        self._state = replace(self._state, **changes)
        if self._state.status != "error" and self._state.error_message is not None:
            self._state = replace(self._state, error_message=None)
        self._notify(self.on_state_change, self._state)

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Playback callback {getattr(callback, '__name__', callback)} failed: {e}", exc_info=True)

    def _report(self, error: BaseException, action: str) -> None:
        if self.error_handler is not None:
            self.error_handler.handle_error(
                error,
                component="playback_engine",
                action=action,
                additional_data={"trace_id": self._trace_id},
            )

    def _emit(self, name: str, metadata: Dict[str, Any]) -> None:
        emit_event(self.tracer, name, metadata, TraceMetadata(trace_id=self._trace_id, component="playback_engine"))
