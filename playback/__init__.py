"""
Speech playback.

- PlaybackEngine: idle/loading/playing/error state machine over one resource
- PlaybackResource: uniform transport surface
    - MediaPlaybackResource: encoded audio through an external player
    - SpeechSynthesisResource: local device synthesizer
- Speech producers: remote service tiers with a device speech last resort
- Voice catalogue and tier-consistent config resolution

Example usage:
    from playback import PlaybackEngine, build_speech_producers
    from services.tts import StubTTSBackend

    engine = PlaybackEngine(build_speech_producers(StubTTSBackend()))
    await engine.play("Two people are crossing the street.")
"""

from .resource import PlaybackResource, PlaybackClock, EVENTS
from .media import MediaPlaybackResource, detect_format, wav_duration, spawn_ffplay
from .speech import SpeechSynthesisResource, match_device_voice, estimate_duration
from .voices import (
    TTSVoice,
    TTSConfig,
    AVAILABLE_TTS_VOICES,
    DEFAULT_TTS_CONFIG,
    find_voice,
    get_default_voice_for_engine,
    validate_tts_config,
    get_compatible_voice,
    resolve_effective_config,
)
from .producers import (
    QuotaGuard,
    RemoteSpeechProducer,
    LocalSpeechProducer,
    build_speech_producers,
    response_error,
)
from .engine import PlaybackEngine, PlaybackState, PlaybackStatus

__all__ = [
    "PlaybackResource",
    "PlaybackClock",
    "EVENTS",
    "MediaPlaybackResource",
    "detect_format",
    "wav_duration",
    "spawn_ffplay",
    "SpeechSynthesisResource",
    "match_device_voice",
    "estimate_duration",
    "TTSVoice",
    "TTSConfig",
    "AVAILABLE_TTS_VOICES",
    "DEFAULT_TTS_CONFIG",
    "find_voice",
    "get_default_voice_for_engine",
    "validate_tts_config",
    "get_compatible_voice",
    "resolve_effective_config",
    "QuotaGuard",
    "RemoteSpeechProducer",
    "LocalSpeechProducer",
    "build_speech_producers",
    "response_error",
    "PlaybackEngine",
    "PlaybackState",
    "PlaybackStatus",
]
