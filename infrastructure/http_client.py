"""Shared async HTTP client with configurable timeout."""

from dataclasses import dataclass
from typing import Any, Optional

import httpx


class ResponseTooLargeError(Exception):
    def __init__(self, limit: int) -> None:
        super().__init__(f"response body exceeds {limit} bytes")
        self.limit = limit


@dataclass
class FetchedBody:
    content: bytes
    content_type: Optional[str]
    status_code: int


class HttpClient:
    """Thin async wrapper around httpx.AsyncClient with a configurable timeout.

    One instance per external service keeps timeouts independently configurable.
    """

    def __init__(self, timeout: float = 5.0, follow_redirects: bool = True) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=follow_redirects)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._client.post(url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._client.get(url, **kwargs)

    async def fetch_limited(self, url: str, max_bytes: int) -> FetchedBody:
        """GET *url*, aborting as soon as the body grows past *max_bytes*."""
        async with self._client.stream("GET", url) as response:
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise ResponseTooLargeError(max_bytes)

            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > max_bytes:
                    raise ResponseTooLargeError(max_bytes)
                chunks.append(chunk)

            return FetchedBody(
                content=b"".join(chunks),
                content_type=response.headers.get("content-type"),
                status_code=response.status_code,
            )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
