"""Filesystem implementation of ImageStore.

Files are written under ``root`` and served by whatever fronts
``public_base_url`` (a CDN bucket sync, a static file server, ...).
"""

from pathlib import Path

from starlette.concurrency import run_in_threadpool

from errors import UpstreamError
from shared.logging import get_logger

log = get_logger(__name__)


class LocalImageStore:
    def __init__(self, root: str, public_base_url: str = "") -> None:
        self._root = Path(root)
        self._public_base_url = public_base_url.rstrip("/")

    def _write(self, filename: str, data: bytes) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        (self._root / filename).write_bytes(data)

    async def put(self, filename: str, data: bytes, content_type: str) -> str:
        if "/" in filename or filename.startswith("."):
            raise ValueError(f"invalid object name: {filename!r}")
        try:
            await run_in_threadpool(self._write, filename, data)
        except OSError as e:
            log.error("image_store_write_failed", filename=filename, error=str(e))
            raise UpstreamError("Image storage unavailable", details={"error": str(e)}) from e

        log.info("image_stored", filename=filename, size=len(data), content_type=content_type)
        if self._public_base_url:
            return f"{self._public_base_url}/{filename}"
        return f"/{filename}"
