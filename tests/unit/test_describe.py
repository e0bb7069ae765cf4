"""
tests/unit/test_describe.py

Tests for image payload handling, the describe producers and the local
Pillow summary used as the queue's fallback.
"""

import base64
import io

import pytest
from PIL import Image

from inference import (
    DescribeRequest,
    LocalImageSummaryBackend,
    NoOpDescribeBackend,
    StubDescribeBackend,
    analyze_image,
    as_producer,
    decode_payload,
)
from runtime.errors import InputError, NetworkError, ProducerError


# ─────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────


def make_png(size=(200, 100), color=(250, 10, 10)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


# ─────────────────────────────────────────────────────
# Payload decoding
# ─────────────────────────────────────────────────────


class TestDecodePayload:
    def test_raw_bytes(self):
        png = make_png()
        data, mime = decode_payload(png)
        assert data == png
        assert mime == "image/png"

    def test_bare_base64(self):
        data, mime = decode_payload(base64.b64encode(b"\xff\xd8\xffjpeg").decode())
        assert data == b"\xff\xd8\xffjpeg"
        assert mime == "image/jpeg"

    def test_data_url(self):
        url = "data:image/webp;base64," + base64.b64encode(b"whatever").decode()
        data, mime = decode_payload(url)
        assert data == b"whatever"
        assert mime == "image/webp"

    @pytest.mark.parametrize("payload", [b"", "", "   ", "not base64!!", None, 42])
    def test_invalid_payloads(self, payload):
        with pytest.raises(ValueError):
            decode_payload(payload)


# ─────────────────────────────────────────────────────
# Producer adapter
# ─────────────────────────────────────────────────────


class TestAsProducer:
    @pytest.mark.asyncio
    async def test_success(self):
        backend = StubDescribeBackend()
        describe = as_producer(backend)

        description = await describe(b"\x89PNGxxxx")

        assert description == "Stub description of a 8-byte image/png image."
        assert describe.__name__ == "stub_describe"
        assert backend.calls == 1

    @pytest.mark.asyncio
    async def test_backend_failure_raises_producer_error(self):
        describe = as_producer(StubDescribeBackend(fail_with="rate_limited"))
        with pytest.raises(ProducerError) as exc_info:
            await describe(b"img")
        assert exc_info.value.error_type == "rate_limited"
        assert exc_info.value.producer == "stub_describe"

    @pytest.mark.asyncio
    async def test_timeout_raises_network_error(self):
        describe = as_producer(StubDescribeBackend(fail_with="timeout"))
        with pytest.raises(NetworkError):
            await describe(b"img")

    @pytest.mark.asyncio
    async def test_undecodable_payload_raises_input_error(self):
        describe = as_producer(StubDescribeBackend())
        with pytest.raises(InputError):
            await describe("%%%")

    @pytest.mark.asyncio
    async def test_disabled_backend(self):
        describe = as_producer(NoOpDescribeBackend())
        with pytest.raises(ProducerError) as exc_info:
            await describe(b"img")
        assert exc_info.value.error_type == "backend_unavailable"


# ─────────────────────────────────────────────────────
# Local summary
# ─────────────────────────────────────────────────────


class TestLocalImageSummary:
    def test_analyze_image(self):
        stats = analyze_image(make_png(size=(200, 100), color=(250, 10, 10)))
        assert stats["width"] == 200
        assert stats["height"] == 100
        assert stats["format"] == "PNG"
        assert stats["orientation"] == "landscape"
        assert stats["tone"] == "warm (red/orange)"
        assert stats["contrast"] == "low"

    @pytest.mark.parametrize("color,brightness", [
        ((0, 0, 0), "very dark"),
        ((255, 255, 255), "bright"),
    ])
    def test_brightness(self, color, brightness):
        stats = analyze_image(make_png(size=(50, 120), color=color))
        assert stats["brightness"] == brightness
        assert stats["orientation"] == "portrait"
        assert stats["tone"] == "neutral/grey"

    @pytest.mark.asyncio
    async def test_describe_marks_degraded(self):
        backend = LocalImageSummaryBackend()
        result = await backend.describe(DescribeRequest(image=make_png()))

        assert result.status == "success"
        assert result.description.startswith("Basic analysis only (image service unavailable)")
        assert "200x100" in result.description
        assert result.metadata["degraded"] is True

    @pytest.mark.asyncio
    async def test_garbage_bytes(self):
        result = await LocalImageSummaryBackend().describe(DescribeRequest(image=b"definitely not an image"))
        assert result.status == "recoverable_error"
        assert result.error_type == "invalid_image"
