"""
Adapt a DescribeBackend to the queue's producer shape: payload -> description.

Non-success responses become ProducerErrors so the queue can classify them.
"""

from typing import Any, Awaitable, Callable, Optional

from runtime.errors import InputError, NetworkError, ProducerError

from .base import DescribeBackend
from .types import DEFAULT_PROMPT, DescribeRequest, DescribeResponse, decode_payload


def response_error(response: DescribeResponse, producer: str) -> ProducerError:
    error_type = response.error_type or "backend_unavailable"
    detail = (response.metadata or {}).get("error")
    message = f"Image description failed ({error_type})" + (f": {detail}" if detail else "")
    if error_type == "timeout":
        return NetworkError(f"Image description timed out{': ' + detail if detail else ''}", producer=producer)
    return ProducerError(message, error_type=error_type, producer=producer)


def as_producer(
    backend: DescribeBackend,
    prompt: str = DEFAULT_PROMPT,
    timeout_s: Optional[float] = None,
) -> Callable[[Any], Awaitable[str]]:
    """
    Wrap a backend as `async (payload) -> description`.

    Payloads are raw image bytes or base64/data-URL strings.
    """

    async def describe(payload: Any) -> str:
        try:
            image, mime_type = decode_payload(payload)
        except ValueError as e:
            raise InputError(str(e)) from e

        request = DescribeRequest(image=image, prompt=prompt, mime_type=mime_type)
        if timeout_s is not None:
            request.timeout_s = timeout_s
        response = await backend.describe(request)
        if response.status != "success" or not response.description:
            raise response_error(response, backend.name)
        return response.description

    describe.__name__ = backend.name
    return describe
