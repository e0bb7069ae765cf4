"""
Remote speech service backend over HTTP.

POST {base_url}/speech with JSON {text, voice, engine, language}; the
response body is encoded audio (Content-Type audio/*). Omitted voice
options select the service defaults.

Status mapping:
  402            -> recoverable_error / insufficient_funds
  429            -> recoverable_error / rate_limited
  400, 404, 422  -> recoverable_error / unsupported_voice
  timeout        -> recoverable_error / timeout
  connect error  -> recoverable_error / network_error
  anything else  -> fatal_error / backend_unavailable
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .base import TTSBackend, TTSRequest, TTSResponse

logger = logging.getLogger(__name__)

_UNSUPPORTED_STATUS = {400, 404, 422}

_CONTENT_TYPE_FORMATS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
}


class HttpTTSBackend(TTSBackend):
    """
    Neural/generative speech service client.

    Uses one pooled httpx.AsyncClient per backend; call aclose() on shutdown.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout_s: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout_s),
            )
        return self._client

    @staticmethod
    def _body(request: TTSRequest) -> Dict[str, Any]:
        body: Dict[str, Any] = {"text": request.text}
        if request.voice:
            body["voice"] = request.voice
        if request.engine:
            body["engine"] = request.engine
        if request.language:
            body["language"] = request.language
        if request.speed != 1.0:
            body["speed"] = request.speed
        return body

    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        base_metadata = {
            "backend": "http_tts",
            "trace_id": request.trace_id,
            "voice": request.voice,
            "engine": request.engine,
        }

        if not request.text or not request.text.strip():
            return TTSResponse(status="recoverable_error", error_type="invalid_text", metadata=base_metadata)

        try:
            client = await self._get_client()
            response = await client.post(
                "/speech",
                json=self._body(request),
                timeout=request.timeout_s or self.timeout_s,
            )
        except httpx.TimeoutException:
            logger.warning(f"Speech service timed out after {request.timeout_s or self.timeout_s}s")
            return TTSResponse(status="recoverable_error", error_type="timeout", metadata=base_metadata)
        except httpx.TransportError as e:
            logger.warning(f"Speech service connection failed: {e}")
            return TTSResponse(
                status="recoverable_error",
                error_type="network_error",
                metadata={**base_metadata, "error": str(e)},
            )

        status_code = response.status_code
        metadata = {**base_metadata, "status_code": status_code}

        if status_code == 402:
            return TTSResponse(status="recoverable_error", error_type="insufficient_funds", metadata=metadata)
        if status_code == 429:
            return TTSResponse(
                status="recoverable_error",
                error_type="rate_limited",
                metadata={**metadata, "retry_after": response.headers.get("Retry-After")},
            )
        if status_code in _UNSUPPORTED_STATUS:
            return TTSResponse(
                status="recoverable_error",
                error_type="unsupported_voice",
                metadata={**metadata, "error": response.text[:200]},
            )
        if status_code != 200 or not response.content:
            return TTSResponse(
                status="fatal_error",
                error_type="backend_unavailable",
                metadata={**metadata, "error": response.text[:200]},
            )

        content_type = response.headers.get("Content-Type", "").split(";")[0].strip().lower()
        return TTSResponse(
            status="success",
            audio_data=response.content,
            audio_format=_CONTENT_TYPE_FORMATS.get(content_type, "mp3"),
            metadata=metadata,
        )

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
