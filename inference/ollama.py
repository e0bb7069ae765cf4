import base64
import logging
from typing import Optional

import httpx

from .base import DescribeBackend
from .types import DescribeRequest, DescribeResponse

logger = logging.getLogger(__name__)


class OllamaVisionBackend(DescribeBackend):
    """
    Ollama backend for remote image description.

    Uses /api/chat with the image attached to the user message
    (vision models such as llava, llama3.2-vision, moondream).
    """

    name = "ollama_vision"

    def __init__(self, model_name: str, base_url: str = "http://localhost:11434", timeout_s: float = 60.0):
        """
        Initialize Ollama vision backend.

        Args:
            model_name: Name of a vision model (e.g. "llava", "llama3.2-vision")
            base_url:   Base URL of the Ollama service
            timeout_s:  Default request timeout
        """
        self.model_name = model_name
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=httpx.Timeout(self.timeout_s))
        return self._client

    async def describe(self, request: DescribeRequest) -> DescribeResponse:
        """
        Describe an image using Ollama /api/chat.

        Flow:
          1. Base64-encode the image into the user message's "images" list
          2. POST to /api/chat (non-streaming)
          3. Return message.content as the description

        Returns:
            DescribeResponse; timeouts and 429 are recoverable, everything
            else is fatal for this attempt
        """
        base_metadata = {
            "backend": "ollama",
            "model": self.model_name,
            "trace_id": request.trace_id,
        }

        payload = {
            "model": self.model_name,
            "messages": [
                {
                    "role": "user",
                    "content": request.prompt,
                    "images": [base64.b64encode(request.image).decode("ascii")],
                }
            ],
            "stream": False,
        }

        try:
            client = await self._get_client()
            resp = await client.post("/api/chat", json=payload, timeout=request.timeout_s or self.timeout_s)

            if resp.status_code == 429:
                return DescribeResponse(
                    status="recoverable_error",
                    error_type="rate_limited",
                    metadata=base_metadata,
                )

            resp.raise_for_status()
            data = resp.json()
            description = (data.get("message") or {}).get("content", "").strip()

            if not description:
                return DescribeResponse(
                    status="recoverable_error",
                    error_type="invalid_output",
                    metadata=base_metadata,
                )

            return DescribeResponse(
                status="success",
                description=description,
                metadata={**base_metadata, "eval_count": data.get("eval_count")},
            )

        except httpx.TimeoutException:
            logger.warning(f"Ollama vision request timed out ({self.model_name})")
            return DescribeResponse(
                status="recoverable_error",
                error_type="timeout",
                metadata=base_metadata,
            )

        except Exception as e:
            logger.warning(f"Ollama vision request failed: {e}")
            return DescribeResponse(
                status="fatal_error",
                error_type="backend_unavailable",
                metadata={**base_metadata, "error": str(e)},
            )

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
