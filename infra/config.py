"""
Infrastructure configuration system.

Environment-based backend selection with sensible defaults.
All components default to a free, local-first stack.
"""

import os
from typing import Optional, Literal
from dataclasses import dataclass

from inference import DescribeBackend, StubDescribeBackend, OllamaVisionBackend, LocalImageSummaryBackend
from services.tts import TTSBackend, StubTTSBackend, HttpTTSBackend
from playback.voices import TTSConfig, find_voice, validate_tts_config
from runtime.queue import QueueOptions


DescribeBackendType = Literal["stub", "ollama"]
TTSBackendType = Literal["stub", "http"]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class InfraConfig:
    """Infrastructure configuration from environment."""

    # Describe
    describe_backend: DescribeBackendType
    ollama_base_url: str
    ollama_vision_model: str
    describe_timeout_s: float
    local_fallback_enabled: bool

    # Queue
    queue_max_concurrent: int
    queue_retry_limit: int
    queue_inter_completion_delay_ms: float
    queue_fallback_enabled: bool

    # TTS
    tts_enabled: bool
    tts_backend: TTSBackendType
    tts_service_url: str
    tts_service_api_key: Optional[str]
    tts_timeout_s: float
    tts_engine: str
    tts_voice: str
    tts_quota_cooldown_s: float

    # Playback
    local_speech_enabled: bool
    playback_sample_interval_ms: float

    # Observability
    tracer_backend: str

    @classmethod
    def from_env(cls) -> "InfraConfig":
        """
        Load configuration from environment variables.

        Defaults prioritize a free, local-first stack:
        - Describe: ollama (llava) with the local Pillow summary as fallback
        - TTS: stub audio with device speech as last resort
        - Tracer: noop
        """
        return cls(
            # Describe Configuration
            describe_backend=os.getenv("DESCRIBE_BACKEND", "ollama"),  # type: ignore
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_vision_model=os.getenv("OLLAMA_VISION_MODEL", "llava"),
            describe_timeout_s=float(os.getenv("DESCRIBE_TIMEOUT_S", "60")),
            local_fallback_enabled=_env_bool("LOCAL_FALLBACK_ENABLED", "true"),

            # Queue Configuration
            queue_max_concurrent=int(os.getenv("QUEUE_MAX_CONCURRENT", "1")),
            queue_retry_limit=int(os.getenv("QUEUE_RETRY_LIMIT", "3")),
            queue_inter_completion_delay_ms=float(os.getenv("QUEUE_INTER_COMPLETION_DELAY_MS", "1000")),
            queue_fallback_enabled=_env_bool("QUEUE_FALLBACK_ENABLED", "true"),

            # TTS Configuration
            tts_enabled=_env_bool("TTS_ENABLED", "true"),
            tts_backend=os.getenv("TTS_BACKEND", "stub"),  # type: ignore
            tts_service_url=os.getenv("TTS_SERVICE_URL", "http://localhost:5002"),
            tts_service_api_key=os.getenv("TTS_SERVICE_API_KEY") or None,
            tts_timeout_s=float(os.getenv("TTS_TIMEOUT_S", "30")),
            tts_engine=os.getenv("TTS_ENGINE", "neural"),
            tts_voice=os.getenv("TTS_VOICE", "Joanna"),
            tts_quota_cooldown_s=float(os.getenv("TTS_QUOTA_COOLDOWN_S", "300")),

            # Playback Configuration
            local_speech_enabled=_env_bool("LOCAL_SPEECH_ENABLED", "true"),
            playback_sample_interval_ms=float(os.getenv("PLAYBACK_SAMPLE_INTERVAL_MS", "100")),

            # Observability
            tracer_backend=os.getenv("TRACER_BACKEND", "noop"),
        )

    def create_describe_backend(self) -> DescribeBackend:
        """Create the primary describe backend based on configuration."""
        if self.describe_backend == "stub":
            return StubDescribeBackend()
        # Default to ollama
        return OllamaVisionBackend(
            model_name=self.ollama_vision_model,
            base_url=self.ollama_base_url,
            timeout_s=self.describe_timeout_s,
        )

    def create_fallback_describe_backend(self) -> Optional[DescribeBackend]:
        """Create the degraded local describer (or None if disabled)."""
        if not self.local_fallback_enabled:
            return None
        return LocalImageSummaryBackend()

    def create_tts_backend(self) -> Optional[TTSBackend]:
        """Create TTS backend instance based on configuration."""
        if not self.tts_enabled:
            return None

        if self.tts_backend == "http":
            return HttpTTSBackend(
                base_url=self.tts_service_url,
                api_key=self.tts_service_api_key,
                timeout_s=self.tts_timeout_s,
            )
        # Default to stub
        return StubTTSBackend()

    def create_queue_options(self) -> QueueOptions:
        """Queue options; invalid values raise pydantic.ValidationError."""
        return QueueOptions(
            max_concurrent=self.queue_max_concurrent,
            retry_limit=self.queue_retry_limit,
            inter_completion_delay_ms=self.queue_inter_completion_delay_ms,
            fallback_enabled=self.queue_fallback_enabled,
        )

    def create_tts_config(self) -> TTSConfig:
        """Default playback config; unknown voices fall back to the engine default."""
        return validate_tts_config(
            engine=self.tts_engine,
            voice=find_voice(self.tts_voice, engine=self.tts_engine) or find_voice(self.tts_voice),
        )


def get_config() -> InfraConfig:
    """Get infrastructure configuration from the environment."""
    return InfraConfig.from_env()
