"""
Text-to-Speech (TTS) abstract interface.

Role: Text → encoded audio only.

Rules:
- Output-only (no state mutation)
- Optional (failure → device speech or text only)
- All failures are explicit and typed, never raised
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any, Literal


TTSStatus = Literal["success", "recoverable_error", "fatal_error"]


@dataclass
class TTSRequest:
    """Text-to-Speech request. Unset voice options mean "service default"."""

    text: str
    voice: Optional[str] = None
    engine: Optional[str] = None  # standard | neural | generative
    language: Optional[str] = None
    speed: float = 1.0
    timeout_s: Optional[float] = 30
    trace_id: Optional[str] = None


@dataclass
class TTSResponse:
    """Text-to-Speech response."""

    status: TTSStatus
    audio_data: Optional[bytes] = None
    audio_format: str = "wav"  # wav, mp3, ogg
    # timeout | network_error | insufficient_funds | rate_limited |
    # unsupported_voice | invalid_text | backend_unavailable
    error_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TTSBackend(ABC):
    """
    Abstract TTS boundary.
    Speech producers depend ONLY on this interface.
    """

    @abstractmethod
    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        """
        Synthesize text to audio.

        Args:
            request: TTSRequest with text and optional voice options

        Returns:
            TTSResponse with audio data or explicit error status
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources."""
        return None
