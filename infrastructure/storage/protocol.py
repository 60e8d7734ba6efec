"""ImageStore protocol: persistence for optimised images."""

from typing import Protocol


class ImageStore(Protocol):
    async def put(self, filename: str, data: bytes, content_type: str) -> str:
        """Store *data* under *filename* and return its public URL."""
        ...
