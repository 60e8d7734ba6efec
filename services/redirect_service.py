"""Short-slug redirect resolution.

``redirect:<slug>`` holds the destination URL. Every lookup schedules a
click metric on the best-effort runner; the redirect response never waits
for it.
"""

from __future__ import annotations

from dataclasses import dataclass

from errors import NotFoundError, UpstreamError
from infrastructure.kv.protocol import KVStore
from services.metrics_service import MetricsStore
from shared import kv_keys
from shared.background import BestEffortRunner
from shared.logging import get_logger, should_sample

log = get_logger(__name__)


@dataclass(frozen=True)
class RedirectEntry:
    slug: str
    url: str


class RedirectResolver:
    def __init__(
        self, kv: KVStore, metrics: MetricsStore, runner: BestEffortRunner
    ) -> None:
        self._kv = kv
        self._metrics = metrics
        self._runner = runner

    async def resolve(self, slug: str) -> str:
        try:
            url = await self._kv.get(kv_keys.redirect_key(slug))
        except Exception as e:
            raise UpstreamError("Redirect lookup failed", details={"error": str(e)}) from e

        if not url:
            self._runner.spawn(
                self._metrics.update_redirect_metrics(slug, "error"),
                label=f"redirect-metrics:{slug}",
            )
            log.info("redirect_not_found", slug=slug)
            raise NotFoundError(f"No redirect for '{slug}'", field="slug")

        self._runner.spawn(
            self._metrics.update_redirect_metrics(slug, "ok"),
            label=f"redirect-metrics:{slug}",
        )
        if should_sample("redirect"):
            log.info("redirect_resolved", slug=slug, url=url)
        return url

    async def list_redirects(self) -> list[RedirectEntry]:
        entries = []
        for key in await self._kv.list(kv_keys.REDIRECT_PREFIX):
            url = await self._kv.get(key)
            if url:
                entries.append(RedirectEntry(slug=kv_keys.slug_from_redirect_key(key), url=url))
        return entries
