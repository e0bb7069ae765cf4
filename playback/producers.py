"""
Speech producers: text + config -> PlaybackResource.

Tiers, in declared order:
  0 remote_full        voice, engine and language from the config
  1 remote_voice_only  voice name only
  2 remote_default     service defaults
  3 device_speech      local synthesizer (degraded)

A quota failure trips the shared QuotaGuard so the remaining remote tiers
fail fast and resolution moves straight to the device synthesizer.
"""

import asyncio
import logging
import time
from typing import Any, Callable, List, Optional

import pyttsx3

from playback.media import MediaPlaybackResource, PlayerFactory
from playback.resource import PlaybackResource
from playback.speech import SpeechSynthesisResource
from playback.voices import TTSConfig
from runtime.errors import (
    NetworkError,
    ProducerError,
    QuotaExceededError,
    UnsupportedConfigurationError,
)
from runtime.fallback import Producer
from services.tts import TTSBackend, TTSRequest, TTSResponse

logger = logging.getLogger(__name__)

REMOTE_MODES = ("full", "voice_only", "service_default")

_MODE_NAMES = {
    "full": "remote_full",
    "voice_only": "remote_voice_only",
    "service_default": "remote_default",
}


class QuotaGuard:
    """Shared cooldown after the remote speech service reports exhausted quota."""

    def __init__(self, cooldown_s: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.cooldown_s = cooldown_s
        self._clock = clock
        self._until = 0.0

    @property
    def active(self) -> bool:
        return self._clock() < self._until

    def trip(self) -> None:
        self._until = self._clock() + self.cooldown_s
        logger.warning(f"Speech service quota exhausted; remote tiers paused for {self.cooldown_s:.0f}s")

    def reset(self) -> None:
        self._until = 0.0


def response_error(response: TTSResponse, producer: str) -> ProducerError:
    """Turn a non-success TTSResponse into the matching ProducerError."""
    error_type = response.error_type or "backend_unavailable"
    detail = (response.metadata or {}).get("error")
    suffix = f": {detail}" if detail else ""

    if error_type == "insufficient_funds":
        return QuotaExceededError(f"Speech service requires payment{suffix}", producer=producer)
    if error_type == "unsupported_voice":
        return UnsupportedConfigurationError(f"Unsupported voice or engine{suffix}", producer=producer)
    if error_type in ("network_error", "timeout"):
        return NetworkError(f"Speech service network {error_type.replace('_', ' ')}{suffix}", producer=producer)
    if response.status == "success":
        return ProducerError("Speech service returned no audio", error_type="invalid_output", producer=producer)
    return ProducerError(f"Speech service error ({error_type}){suffix}", error_type=error_type, producer=producer)


class RemoteSpeechProducer:
    """Remote speech tier producing a MediaPlaybackResource."""

    def __init__(
        self,
        backend: TTSBackend,
        mode: str = "full",
        quota_guard: Optional[QuotaGuard] = None,
        player_factory: Optional[PlayerFactory] = None,
        timeout_s: Optional[float] = None,
    ):
        if mode not in REMOTE_MODES:
            raise ValueError(f"Unknown remote speech mode: {mode}")
        self.backend = backend
        self.mode = mode
        self.name = _MODE_NAMES[mode]
        self.quota_guard = quota_guard
        self.player_factory = player_factory
        self.timeout_s = timeout_s

    def build_request(self, text: str, config: TTSConfig) -> TTSRequest:
        request = TTSRequest(text=text, timeout_s=self.timeout_s)
        if self.mode in ("full", "voice_only"):
            request.voice = config.voice.name
        if self.mode == "full":
            request.engine = config.voice.engine
            request.language = config.voice.language
        return request

    async def __call__(self, text: str, config: TTSConfig) -> PlaybackResource:
        if self.quota_guard is not None and self.quota_guard.active:
            raise QuotaExceededError("Speech service quota exhausted; skipping remote tier", producer=self.name)

        request = self.build_request(text, config)
        logger.debug(f"[{self.name}] voice={request.voice} engine={request.engine} language={request.language}")
        response = await self.backend.synthesize(request)

        if response.status != "success" or not response.audio_data:
            error = response_error(response, self.name)
            if isinstance(error, QuotaExceededError) and self.quota_guard is not None:
                self.quota_guard.trip()
            raise error

        return await MediaPlaybackResource.from_audio(
            response.audio_data,
            response.audio_format,
            player_factory=self.player_factory,
            name=self.name,
        )


class LocalSpeechProducer:
    """Device synthesizer tier producing a SpeechSynthesisResource."""

    name = "device_speech"

    def __init__(self, engine_factory: Callable[[], Any] = pyttsx3.init):
        self.engine_factory = engine_factory

    async def __call__(self, text: str, config: TTSConfig) -> PlaybackResource:
        loop = asyncio.get_running_loop()
        try:
            engine = await loop.run_in_executor(None, self.engine_factory)
        except Exception as e:
            raise ProducerError(
                f"Device speech synthesis not supported: {e}",
                error_type="backend_unavailable",
                producer=self.name,
            ) from e
        return SpeechSynthesisResource(text, voice=config.voice, engine=engine, name=self.name)


def build_speech_producers(
    backend: Optional[TTSBackend],
    local_enabled: bool = True,
    quota_guard: Optional[QuotaGuard] = None,
    player_factory: Optional[PlayerFactory] = None,
    engine_factory: Optional[Callable[[], Any]] = None,
    timeout_s: Optional[float] = None,
) -> List[Producer]:
    """Ordered producer chain for the PlaybackEngine."""
    producers: List[Producer] = []
    if backend is not None:
        for mode in REMOTE_MODES:
            remote = RemoteSpeechProducer(
                backend,
                mode=mode,
                quota_guard=quota_guard,
                player_factory=player_factory,
                timeout_s=timeout_s,
            )
            producers.append(Producer(name=remote.name, fn=remote))
    if local_enabled:
        local = LocalSpeechProducer(engine_factory or pyttsx3.init)
        producers.append(Producer(name=local.name, fn=local))
    if not producers:
        raise ValueError("At least one speech producer must be enabled")
    return producers
