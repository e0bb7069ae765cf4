"""
Voice catalogue and playback configuration.

A PlaybackConfig (TTSConfig) names a quality tier ("engine") and a voice.
The effective voice must belong to the requested tier; when it does not,
a compatible voice is substituted and the substitution is reported.
"""

import logging
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


VoiceEngine = Literal["standard", "neural", "generative"]
VALID_ENGINES: Tuple[str, ...] = ("standard", "neural", "generative")


class TTSVoice(BaseModel):
    """A named voice identity."""

    language: str = Field(..., min_length=2, description="BCP-47 language tag, e.g. en-US")
    name: str = Field(..., min_length=1)
    engine: VoiceEngine
    display_name: str = ""

    model_config = {"frozen": True}

    def matches(self, other: "TTSVoice") -> bool:
        return (self.language, self.name, self.engine) == (other.language, other.name, other.engine)


AVAILABLE_TTS_VOICES: List[TTSVoice] = [
    TTSVoice(language="en-IE", name="Niamh", engine="neural", display_name="Niamh (Irish, Neural)"),
    TTSVoice(language="en-GB", name="Amy", engine="generative", display_name="Amy (British, Generative)"),
    TTSVoice(language="en-GB", name="Brian", engine="standard", display_name="Brian (British, Standard)"),
    TTSVoice(language="en-US", name="Matthew", engine="generative", display_name="Matthew (US, Generative)"),
    TTSVoice(language="en-US", name="Joanna", engine="neural", display_name="Joanna (US, Neural)"),
]


def get_default_voice_for_engine(engine: str) -> TTSVoice:
    """First catalogue voice on the tier, or the first catalogue voice."""
    for voice in AVAILABLE_TTS_VOICES:
        if voice.engine == engine:
            return voice
    return AVAILABLE_TTS_VOICES[0]


def find_voice(name: str, language: Optional[str] = None, engine: Optional[str] = None) -> Optional[TTSVoice]:
    """Look a voice up by name (case-insensitive), optionally narrowed by language and tier."""
    for voice in AVAILABLE_TTS_VOICES:
        if voice.name.lower() != name.lower():
            continue
        if language and voice.language != language:
            continue
        if engine and voice.engine != engine:
            continue
        return voice
    return None


class TTSConfig(BaseModel):
    """Requested tier and voice."""

    engine: VoiceEngine = "neural"
    voice: TTSVoice = Field(default_factory=lambda: find_voice("Joanna"))

    def merge(self, engine: Optional[str] = None, voice: Optional[TTSVoice] = None) -> "TTSConfig":
        """Return a copy with the given fields replaced."""
        update = {}
        if engine is not None:
            update["engine"] = engine
        if voice is not None:
            update["voice"] = voice
        return self.model_copy(update=update)


DEFAULT_TTS_CONFIG = TTSConfig()


def validate_tts_config(engine: Optional[str] = None, voice: Optional[TTSVoice] = None) -> TTSConfig:
    """
    Build a config from loose input.

    Unknown engines become "standard". Voices not in the catalogue become
    the default voice for the engine.
    """
    resolved_engine = engine if engine in VALID_ENGINES else "standard"
    if voice is None or not any(v.matches(voice) for v in AVAILABLE_TTS_VOICES):
        voice = get_default_voice_for_engine(resolved_engine)
    return TTSConfig(engine=resolved_engine, voice=voice)


def get_compatible_voice(preferred: TTSVoice, engine: str) -> TTSVoice:
    """
    Pick a voice on the requested tier.

    Order: exact voice on the tier, same name on the tier, tier default.
    """
    for voice in AVAILABLE_TTS_VOICES:
        if voice.language == preferred.language and voice.name == preferred.name and voice.engine == engine:
            return voice
    for voice in AVAILABLE_TTS_VOICES:
        if voice.name == preferred.name and voice.engine == engine:
            return voice
    return get_default_voice_for_engine(engine)


def resolve_effective_config(config: TTSConfig) -> Tuple[TTSConfig, bool]:
    """
    Make the voice tier consistent with the requested tier.

    Returns:
        (effective config, substituted)
    """
    if config.voice.engine == config.engine:
        return config, False
    voice = get_compatible_voice(config.voice, config.engine)
    logger.info(
        f"Voice {config.voice.name} ({config.voice.engine}) does not match engine "
        f"{config.engine}; using {voice.name}"
    )
    return config.merge(voice=voice), True
