"""
Local degraded image description (Pillow).

Runs without any remote dependency. It cannot see objects; it reports what
pixel statistics reveal: size, orientation, brightness, color cast and
contrast.
"""

import asyncio
import io
import logging
from typing import Any, Dict

from PIL import Image, ImageStat, UnidentifiedImageError

from .base import DescribeBackend
from .types import DescribeRequest, DescribeResponse

logger = logging.getLogger(__name__)

_ANALYSIS_SIZE = (128, 128)


def _orientation(width: int, height: int) -> str:
    if width > height * 1.1:
        return "landscape"
    if height > width * 1.1:
        return "portrait"
    return "square"


def _brightness(luma: float) -> str:
    if luma < 50:
        return "very dark"
    if luma < 100:
        return "dim"
    if luma < 170:
        return "moderately lit"
    return "bright"


def _tone(r: float, g: float, b: float) -> str:
    spread = max(r, g, b) - min(r, g, b)
    if spread < 15:
        return "neutral/grey"
    if r >= g and r >= b:
        return "warm (red/orange)"
    if g >= r and g >= b:
        return "green"
    return "cool (blue)"


def analyze_image(data: bytes) -> Dict[str, Any]:
    """Pixel statistics for an encoded image."""
    with Image.open(io.BytesIO(data)) as image:
        width, height = image.size
        rgb = image.convert("RGB")
        rgb.thumbnail(_ANALYSIS_SIZE)
        r, g, b = ImageStat.Stat(rgb).mean
        luma_stat = ImageStat.Stat(rgb.convert("L"))
        return {
            "width": width,
            "height": height,
            "format": image.format,
            "orientation": _orientation(width, height),
            "brightness": _brightness(luma_stat.mean[0]),
            "tone": _tone(r, g, b),
            "contrast": "high" if luma_stat.stddev[0] > 60 else "low" if luma_stat.stddev[0] < 25 else "normal",
        }


def summarize(stats: Dict[str, Any]) -> str:
    return (
        f"Basic analysis only (image service unavailable): a {stats['orientation']} "
        f"{stats['width']}x{stats['height']} image that is {stats['brightness']}, "
        f"with a {stats['tone']} color cast and {stats['contrast']} contrast."
    )


class LocalImageSummaryBackend(DescribeBackend):
    """Degraded describer used as the queue's fallback operation."""

    name = "local_summary"

    async def describe(self, request: DescribeRequest) -> DescribeResponse:
        metadata = {"backend": "local_pillow", "trace_id": request.trace_id, "degraded": True}
        loop = asyncio.get_running_loop()
        try:
            stats = await loop.run_in_executor(None, analyze_image, request.image)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.warning(f"Local image analysis failed: {e}")
            return DescribeResponse(
                status="recoverable_error",
                error_type="invalid_image",
                metadata={**metadata, "error": str(e)},
            )

        return DescribeResponse(
            status="success",
            description=summarize(stats),
            metadata={**metadata, **stats},
        )
