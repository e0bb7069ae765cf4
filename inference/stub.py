from typing import Optional

from .base import DescribeBackend
from .types import DescribeRequest, DescribeResponse


class StubDescribeBackend(DescribeBackend):
    """
    Deterministic fake describer for testing and CI.

    This backend is fast, deterministic, and never fails silently.
    Set `fail_with` to an error_type to make every call fail with it.
    """

    name = "stub_describe"

    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.calls = 0

    async def describe(self, request: DescribeRequest) -> DescribeResponse:
        self.calls += 1
        metadata = {"backend": "stub", "trace_id": request.trace_id}

        if self.fail_with:
            return DescribeResponse(status="recoverable_error", error_type=self.fail_with, metadata=metadata)

        if not request.image:
            return DescribeResponse(status="recoverable_error", error_type="invalid_image", metadata=metadata)

        return DescribeResponse(
            status="success",
            description=f"Stub description of a {len(request.image)}-byte {request.mime_type} image.",
            metadata=metadata,
        )


class NoOpDescribeBackend(DescribeBackend):
    """Describer that always fails gracefully (for disabled mode)."""

    name = "noop_describe"

    async def describe(self, request: DescribeRequest) -> DescribeResponse:
        return DescribeResponse(
            status="fatal_error",
            error_type="backend_unavailable",
            metadata={"backend": "noop", "trace_id": request.trace_id, "reason": "Describe disabled"},
        )
