"""
Local device speech synthesis resource (pyttsx3).

Degraded last-resort producer: voice matching is approximate, timing is
estimated from the text length and seeking is accepted without moving.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Sequence

import pyttsx3

from playback.resource import PlaybackClock, PlaybackResource
from playback.voices import TTSVoice
from runtime.errors import ResourceError

logger = logging.getLogger(__name__)

SPEECH_RATE_FACTOR = 0.9
SECONDS_PER_CHAR = 0.08
MIN_DURATION_S = 1.0


def estimate_duration(text: str) -> float:
    return max(len(text) * SECONDS_PER_CHAR, MIN_DURATION_S)


def match_device_voice(voices: Sequence[Any], voice: Optional[TTSVoice]) -> Optional[Any]:
    """
    Pick the closest device voice.

    First a device voice whose name contains the requested name, then one
    whose language starts with the requested language prefix.
    """
    if voice is None or not voices:
        return None
    wanted_name = voice.name.lower()
    for candidate in voices:
        if wanted_name in str(getattr(candidate, "name", "")).lower():
            return candidate

    prefix = voice.language.split("-")[0].lower()
    for candidate in voices:
        languages = getattr(candidate, "languages", None) or []
        for language in languages:
            if isinstance(language, bytes):
                language = language.decode("utf-8", errors="ignore")
            if str(language).lstrip("\x05").lower().startswith(prefix):
                return candidate
        if str(getattr(candidate, "id", "")).lower().split("/")[-1].startswith(prefix):
            return candidate
    return None


class SpeechSynthesisResource(PlaybackResource):
    """
    Text spoken through the device synthesizer in an executor thread.

    play() resolves once the utterance has been handed to the synthesizer;
    completion is reported through the "ended" event.
    """

    supports_seek = False

    def __init__(
        self,
        text: str,
        voice: Optional[TTSVoice] = None,
        engine: Any = None,
        engine_factory: Callable[[], Any] = pyttsx3.init,
        name: str = "device_speech",
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(name)
        self.text = text
        self.voice = voice
        self._engine_factory = engine_factory
        self._engine: Any = engine
        self._configured = False
        self._duration = estimate_duration(text)
        self._position = PlaybackClock(clock)
        self._speaking = False
        self._cancelled = False
        self._metadata_sent = False
        self._task: Optional[asyncio.Task] = None

    async def play(self) -> None:
        if self._released:
            raise ResourceError(f"{self.name} has been released")
        if self._speaking:
            return
        if not self._metadata_sent:
            self._metadata_sent = True
            self._dispatch("loadedmetadata")

        loop = asyncio.get_running_loop()
        try:
            if not self._configured:
                await loop.run_in_executor(None, self._prepare_engine)
                self._configured = True
        except Exception as e:
            raise ResourceError(f"Device speech synthesis unavailable: {e}") from e

        self._speaking = True
        self._cancelled = False
        self._position.set(0.0)
        self._position.start()
        self._task = loop.create_task(self._speak(loop.run_in_executor(None, self._run_utterance)))

    def _prepare_engine(self) -> None:
        if self._engine is None:
            self._engine = self._engine_factory()
        engine = self._engine
        matched = match_device_voice(engine.getProperty("voices") or [], self.voice)
        if matched is not None:
            engine.setProperty("voice", matched.id)
            logger.info(f"Using matching device voice: {getattr(matched, 'name', matched.id)}")
        else:
            logger.info("No matching device voice found, using default")
        rate = engine.getProperty("rate") or 200
        engine.setProperty("rate", int(rate * SPEECH_RATE_FACTOR))
        engine.setProperty("volume", self._volume)

    def _run_utterance(self) -> None:
        self._engine.say(self.text)
        self._engine.runAndWait()

    async def _speak(self, utterance: "asyncio.Future") -> None:
        error: Optional[BaseException] = None
        try:
            await utterance
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if self._cancelled:
            return
        self._speaking = False
        self._position.stop()
        self._task = None
        if error is not None:
            logger.error(f"Device speech synthesis failed: {error}")
            self._dispatch("error", ResourceError("Device speech synthesis failed"))
        else:
            self._dispatch("ended")

    def pause(self) -> None:
        if not self._speaking:
            return
        self._cancelled = True
        self._speaking = False
        self._position.stop()
        if self._engine is not None:
            try:
                self._engine.stop()
            except Exception as e:
                logger.warning(f"Device speech stop failed: {e}")
        if self._task is not None:
            self._task.cancel()
            self._task = None

    @property
    def paused(self) -> bool:
        return not self._speaking

    @property
    def duration(self) -> float:
        return self._duration

    def _get_position(self) -> float:
        if not self._speaking:
            return 0.0
        return min(self._position.position(), self._duration)

    def _set_position(self, value: float) -> None:
        pass

    def _apply_volume(self, volume: float) -> None:
        if self._engine is not None:
            try:
                self._engine.setProperty("volume", volume)
            except Exception as e:
                logger.debug(f"Device speech volume change failed: {e}")
