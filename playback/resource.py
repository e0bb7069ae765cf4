"""
PlaybackResource: uniform transport surface over audio producers.

Concrete variants:
- MediaPlaybackResource: encoded audio played by an external player process
- SpeechSynthesisResource: text spoken by the local device synthesizer

Events:
- loadedmetadata  duration known             handler()
- timeupdate      position advanced          handler()
- ended           playback reached the end   handler()
- error           failure after acquisition  handler(error)

play() resolves once playback has started, not when it finishes.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

EVENTS = ("loadedmetadata", "timeupdate", "ended", "error")

Handler = Callable[..., None]


class PlaybackClock:
    """Wall-clock position tracker that can be started, stopped and moved."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._offset = 0.0
        self._started_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def start(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock()

    def stop(self) -> None:
        if self._started_at is not None:
            self._offset += self._clock() - self._started_at
            self._started_at = None

    def position(self) -> float:
        if self._started_at is None:
            return self._offset
        return self._offset + (self._clock() - self._started_at)

    def set(self, value: float) -> None:
        self._offset = value
        if self._started_at is not None:
            self._started_at = self._clock()


class PlaybackResource(ABC):
    """
    Abstract audio resource owned by a PlaybackEngine.

    Subclasses implement play/pause, the position accessors and duration.
    release() is idempotent: it pauses, drops every listener and frees the
    underlying handle.
    """

    supports_seek: bool = True

    def __init__(self, name: str):
        self.name = name
        self._listeners: Dict[str, List[Handler]] = {event: [] for event in EVENTS}
        self._volume = 1.0
        self._released = False

    # ── Events ────────────────────────────────────────────────────────────

    def add_event_listener(self, event: str, handler: Handler) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown playback event: {event}")
        if handler not in self._listeners[event]:
            self._listeners[event].append(handler)

    def remove_event_listener(self, event: str, handler: Handler) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(h) for h in self._listeners.values())

    def _dispatch(self, event: str, *args) -> None:
        if self._released:
            return
        for handler in list(self._listeners.get(event, [])):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"[{self.name}] '{event}' handler failed: {e}", exc_info=True)

    # ── Transport ─────────────────────────────────────────────────────────

    @abstractmethod
    async def play(self) -> None:
        """Start (or resume) playback."""
        raise NotImplementedError

    @abstractmethod
    def pause(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def paused(self) -> bool:
        raise NotImplementedError

    @property
    @abstractmethod
    def duration(self) -> float:
        """Duration in seconds (0 when unknown)."""
        raise NotImplementedError

    @abstractmethod
    def _get_position(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def _set_position(self, value: float) -> None:
        raise NotImplementedError

    @property
    def current_time(self) -> float:
        return self._get_position()

    @current_time.setter
    def current_time(self, value: float) -> None:
        self._set_position(max(0.0, float(value)))

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, value: float) -> None:
        self._volume = min(1.0, max(0.0, float(value)))
        self._apply_volume(self._volume)

    def _apply_volume(self, volume: float) -> None:
        pass

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        try:
            self.pause()
        except Exception as e:
            logger.warning(f"[{self.name}] pause during release failed: {e}")
        self._released = True
        for handlers in self._listeners.values():
            handlers.clear()
        self._release_handle()

    def _release_handle(self) -> None:
        pass
