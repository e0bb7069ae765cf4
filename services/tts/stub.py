"""
Stub TTS backend for testing and offline development.

Deterministic, fast, and never fails silently.
"""

import io
import wave

from .base import TTSBackend, TTSRequest, TTSResponse

STUB_SAMPLE_RATE = 8000
STUB_SECONDS_PER_CHAR = 0.06


def silent_wav(duration_s: float, sample_rate: int = STUB_SAMPLE_RATE) -> bytes:
    """Mono 16-bit silence of the given duration."""
    frames = max(1, int(duration_s * sample_rate))
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(b"\x00\x00" * frames)
    return buffer.getvalue()


class StubTTSBackend(TTSBackend):
    """
    Deterministic fake TTS for testing and CI.

    Produces silent WAV audio whose duration depends on the text length.
    Voices listed in `unsupported_voices` are rejected like a real service
    rejects unknown voice parameters.
    """

    def __init__(self, unsupported_voices=()):
        self.unsupported_voices = {v.lower() for v in unsupported_voices}
        self.requests = []

    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        self.requests.append(request)
        metadata = {"backend": "stub_tts", "trace_id": request.trace_id}

        if not request.text or not request.text.strip():
            return TTSResponse(status="recoverable_error", error_type="invalid_text", metadata=metadata)

        if request.voice and request.voice.lower() in self.unsupported_voices:
            return TTSResponse(
                status="recoverable_error",
                error_type="unsupported_voice",
                metadata={**metadata, "voice": request.voice},
            )

        duration = len(request.text) * STUB_SECONDS_PER_CHAR
        return TTSResponse(
            status="success",
            audio_data=silent_wav(duration),
            audio_format="wav",
            metadata={**metadata, "text_length": len(request.text), "voice": request.voice},
        )


class NoOpTTSBackend(TTSBackend):
    """TTS that always fails gracefully (for disabled mode)."""

    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        return TTSResponse(
            status="fatal_error",
            error_type="backend_unavailable",
            metadata={
                "backend": "noop_tts",
                "trace_id": request.trace_id,
                "reason": "TTS disabled"
            }
        )
