"""
Image-description boundary layer.

This package provides a clean abstraction for the "describe this image"
operation, keeping the processing queue agnostic of the backend.

Supported backends:
- StubDescribeBackend: Deterministic fake describer (default for CI/tests)
- OllamaVisionBackend: Remote vision model served by Ollama
- LocalImageSummaryBackend: Degraded local summary (fallback)
- NoOpDescribeBackend: Disabled mode

Example usage:
    from inference import StubDescribeBackend, as_producer

    describe = as_producer(StubDescribeBackend())
    description = await describe(image_bytes)
"""

from .types import DescribeRequest, DescribeResponse, DescribeStatus, DEFAULT_PROMPT, decode_payload
from .base import DescribeBackend
from .stub import StubDescribeBackend, NoOpDescribeBackend
from .ollama import OllamaVisionBackend
from .local import LocalImageSummaryBackend, analyze_image
from .producer import as_producer

__all__ = [
    "DescribeRequest",
    "DescribeResponse",
    "DescribeStatus",
    "DEFAULT_PROMPT",
    "decode_payload",
    "DescribeBackend",
    "StubDescribeBackend",
    "NoOpDescribeBackend",
    "OllamaVisionBackend",
    "LocalImageSummaryBackend",
    "analyze_image",
    "as_producer",
]
