"""
Streamed-media playback resource.

Encoded audio is written to a temporary file and played by an external
player process (ffplay). Position is tracked with a wall clock; seeking
and volume changes restart the player at the current position.
"""

import asyncio
import io
import logging
import os
import subprocess
import tempfile
import time
import wave
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from playback.resource import PlaybackClock, PlaybackResource
from runtime.errors import ResourceError

logger = logging.getLogger(__name__)


class AudioFormat(str, Enum):
    """Audio formats the media resource accepts."""
    WAV = "wav"
    MP3 = "mp3"
    OGG = "ogg"


def detect_format(audio_data: bytes) -> Optional[str]:
    """Detect audio format from magic bytes."""
    if audio_data.startswith(b"RIFF"):
        return AudioFormat.WAV.value
    if audio_data.startswith(b"ID3") or audio_data.startswith(b"\xff\xfb") or audio_data.startswith(b"\xff\xf3"):
        return AudioFormat.MP3.value
    if audio_data.startswith(b"OggS"):
        return AudioFormat.OGG.value
    return None


def wav_duration(audio_data: bytes) -> Optional[float]:
    """Duration of WAV bytes from the header, or None."""
    try:
        with wave.open(io.BytesIO(audio_data), "rb") as wav:
            rate = wav.getframerate()
            if rate <= 0:
                return None
            return wav.getnframes() / float(rate)
    except (wave.Error, EOFError):
        return None


def ffprobe_duration(file_path: str) -> Optional[float]:
    """
    Duration of an audio file in seconds using ffprobe.

    Returns None if ffprobe fails or is not installed.
    """
    try:
        cmd = [
            "ffprobe",
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            file_path,
        ]
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=2.0)
        if result.returncode == 0 and result.stdout.strip():
            return float(result.stdout.strip())
    except (subprocess.TimeoutExpired, ValueError, FileNotFoundError):
        pass
    return None


async def probe_duration(audio_data: bytes, audio_format: str, file_path: Optional[str] = None) -> float:
    """Duration from the WAV header when possible, otherwise ffprobe in an executor."""
    if audio_format == AudioFormat.WAV.value:
        duration = wav_duration(audio_data)
        if duration is not None:
            return duration
    if file_path is None:
        return 0.0
    loop = asyncio.get_running_loop()
    duration = await loop.run_in_executor(None, ffprobe_duration, file_path)
    return duration or 0.0


PlayerFactory = Callable[[str, float, float], Awaitable[Any]]


async def spawn_ffplay(file_path: str, start_s: float, volume: float) -> asyncio.subprocess.Process:
    """Start ffplay headless at the given offset and volume."""
    cmd = [
        "ffplay",
        "-nodisp",
        "-autoexit",
        "-loglevel", "error",
        "-ss", f"{start_s:.3f}",
        "-volume", str(int(round(volume * 100))),
        file_path,
    ]
    return await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )


def write_temp_audio(audio_data: bytes, audio_format: str) -> str:
    fd, path = tempfile.mkstemp(prefix="aloud_", suffix=f".{audio_format}")
    with os.fdopen(fd, "wb") as f:
        f.write(audio_data)
    return path


class MediaPlaybackResource(PlaybackResource):
    """
    Audio bytes played through an external player process.

    Args:
        file_path: Audio file to play (owned and deleted on release)
        duration: Known duration in seconds (0 when unknown)
        player_factory: Coroutine (path, start_s, volume) -> process with
            wait(), terminate() and returncode; defaults to ffplay
        update_interval_s: Cadence of timeupdate events while playing
    """

    def __init__(
        self,
        file_path: str,
        duration: float = 0.0,
        player_factory: Optional[PlayerFactory] = None,
        name: str = "media",
        clock: Callable[[], float] = time.monotonic,
        update_interval_s: float = 0.25,
    ):
        super().__init__(name)
        self.file_path = file_path
        self._duration = max(0.0, duration)
        self._player_factory = player_factory or spawn_ffplay
        self._position = PlaybackClock(clock)
        self._update_interval_s = update_interval_s
        self._process: Any = None
        self._watcher: Optional[asyncio.Task] = None
        self._restart: Optional[asyncio.Task] = None
        self._wanted = False
        self._metadata_sent = False
        # bumped on every seek or volume change
        self._settings_epoch = 0

    @classmethod
    async def from_audio(
        cls,
        audio_data: bytes,
        audio_format: Optional[str] = None,
        **kwargs,
    ) -> "MediaPlaybackResource":
        """Write audio bytes to a temporary file and probe the duration."""
        audio_format = audio_format or detect_format(audio_data) or AudioFormat.WAV.value
        path = write_temp_audio(audio_data, audio_format)
        try:
            duration = await probe_duration(audio_data, audio_format, path)
        except BaseException:
            _remove_file(path)
            raise
        return cls(path, duration=duration, **kwargs)

    # ── Transport ─────────────────────────────────────────────────────────

    async def play(self) -> None:
        if self._released:
            raise ResourceError(f"{self.name} has been released")
        if self._process is not None or self._restart is not None:
            self._wanted = True
            return
        self._wanted = True
        if not self._metadata_sent:
            self._metadata_sent = True
            self._dispatch("loadedmetadata")
        if self._duration and self._position.position() >= self._duration:
            self._position.set(0.0)
        try:
            await self._start_player()
        except ResourceError:
            self._wanted = False
            raise

    def pause(self) -> None:
        self._wanted = False
        if self._restart is not None:
            self._restart.cancel()
            self._restart = None
        self._stop_player()

    @property
    def paused(self) -> bool:
        return not self._wanted or self._released

    @property
    def duration(self) -> float:
        return self._duration

    def _get_position(self) -> float:
        position = self._position.position()
        if self._duration:
            return min(position, self._duration)
        return position

    def _set_position(self, value: float) -> None:
        if self._duration:
            value = min(value, self._duration)
        self._settings_epoch += 1
        restart = self._process is not None
        if restart:
            self._stop_player()
        self._position.set(value)
        if restart:
            self._schedule_restart()

    def _apply_volume(self, volume: float) -> None:
        self._settings_epoch += 1
        if self._process is not None:
            self._stop_player()
            self._schedule_restart()

    # ── Player process ────────────────────────────────────────────────────

    async def _start_player(self) -> None:
        while True:
            epoch = self._settings_epoch
            try:
                process = await self._player_factory(self.file_path, self._get_position(), self._volume)
            except OSError as e:
                raise ResourceError(f"Media player could not start: {e}") from e

            if self._released or not self._wanted:
                _terminate(process)
                return
            if epoch == self._settings_epoch:
                break
            # seek or volume changed while the player was starting
            _terminate(process)

        self._process = process
        self._position.start()
        self._watcher = asyncio.get_running_loop().create_task(self._watch(process))

    def _stop_player(self) -> None:
        process, self._process = self._process, None
        if self._watcher is not None:
            self._watcher.cancel()
            self._watcher = None
        self._position.stop()
        if process is not None:
            _terminate(process)

    def _schedule_restart(self) -> None:
        self._restart = asyncio.get_running_loop().create_task(self._restart_player())

    async def _restart_player(self) -> None:
        try:
            await self._start_player()
        except ResourceError as e:
            self._restart = None
            self._wanted = False
            logger.error(f"[{self.name}] restart failed: {e}")
            self._dispatch("error", e)
        else:
            self._restart = None

    async def _watch(self, process: Any) -> None:
        while True:
            try:
                returncode = await asyncio.wait_for(process.wait(), timeout=self._update_interval_s)
                break
            except asyncio.TimeoutError:
                self._dispatch("timeupdate")

        if process is not self._process:
            return
        self._process = None
        self._wanted = False
        self._watcher = None
        self._position.stop()

        if returncode == 0:
            if self._duration:
                self._position.set(self._duration)
            self._dispatch("ended")
        else:
            self._dispatch("error", ResourceError(f"Media player exited with code {returncode}"))

    def _release_handle(self) -> None:
        _remove_file(self.file_path)


def _remove_file(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"could not remove {path}: {e}")


def _terminate(process: Any) -> None:
    if getattr(process, "returncode", None) is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        pass
