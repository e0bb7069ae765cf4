from abc import ABC, abstractmethod
from .types import DescribeRequest, DescribeResponse


class DescribeBackend(ABC):
    """
    Abstract image-description boundary.
    Queue producers must depend ONLY on this interface.
    """

    name: str = "describe"

    @abstractmethod
    async def describe(self, request: DescribeRequest) -> DescribeResponse:
        """Describe an image. Never raises; failures are typed responses."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources."""
        return None
