"""
Text-to-Speech service exports.

Clean interface for speech producers to import TTS components.
"""

from .base import TTSBackend, TTSRequest, TTSResponse, TTSStatus
from .stub import StubTTSBackend, NoOpTTSBackend, silent_wav
from .http import HttpTTSBackend

__all__ = [
    "TTSBackend",
    "TTSRequest",
    "TTSResponse",
    "TTSStatus",
    "StubTTSBackend",
    "NoOpTTSBackend",
    "HttpTTSBackend",
    "silent_wav",
]
