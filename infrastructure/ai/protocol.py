"""AltTextProvider protocol, implemented by the Cloudflare Workers AI adapter."""

from typing import Protocol


class AltTextProvider(Protocol):
    model: str

    async def describe(self, image: bytes) -> str: ...
