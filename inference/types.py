import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any, Literal, Tuple, Union

DescribeStatus = Literal["success", "recoverable_error", "fatal_error"]

DEFAULT_PROMPT = """Analyze this image in detail. Please provide a comprehensive description that includes:
1. Main objects and their positions
2. Colors and lighting conditions
3. Any text or signs visible
4. Overall scene context and mood
5. Notable details or interesting features

Be specific and descriptive, but concise."""

_DATA_URL_RE = re.compile(r"^data:(?P<mime>image/[\w.+-]+)?(?:;[\w=-]+)*;base64,(?P<data>.*)$", re.DOTALL)


@dataclass
class DescribeRequest:
    image: bytes
    prompt: str = DEFAULT_PROMPT
    mime_type: str = "image/jpeg"
    timeout_s: Optional[float] = 60
    trace_id: Optional[str] = None


@dataclass
class DescribeResponse:
    status: DescribeStatus
    description: Optional[str] = None
    error_type: Optional[str] = None   # timeout | rate_limited | invalid_image | invalid_output | backend_unavailable
    metadata: Optional[Dict[str, Any]] = None


def decode_payload(payload: Union[bytes, bytearray, str]) -> Tuple[bytes, str]:
    """
    Normalize an image payload to (bytes, mime type).

    Accepts raw bytes, a data:image/...;base64, URL or bare base64 text.

    Raises:
        ValueError: payload is empty or not decodable
    """
    if isinstance(payload, (bytes, bytearray)):
        if not payload:
            raise ValueError("Empty image payload")
        return bytes(payload), sniff_mime_type(bytes(payload))

    if not isinstance(payload, str) or not payload.strip():
        raise ValueError("Empty image payload")

    text = payload.strip()
    mime = None
    match = _DATA_URL_RE.match(text)
    if match:
        mime = match.group("mime")
        text = match.group("data")
    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Image payload is not valid base64: {e}") from e
    if not data:
        raise ValueError("Empty image payload")
    return data, mime or sniff_mime_type(data)


def sniff_mime_type(data: bytes) -> str:
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"GIF8"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
