"""Unit tests for redirect resolution and its click metrics."""

import pytest

from errors import NotFoundError, UpstreamError
from infrastructure.kv.memory import InMemoryKVStore
from services.kv_document import import_document
from services.metrics_service import MetricsStore
from services.redirect_service import RedirectEntry, RedirectResolver
from shared.background import BestEffortRunner


@pytest.fixture
def kv() -> InMemoryKVStore:
    return InMemoryKVStore(
        {
            "redirect:gh": "https://github.com/daveio",
            "redirect:cv": "https://dave.io/cv.pdf",
        }
    )


@pytest.fixture
def runner() -> BestEffortRunner:
    return BestEffortRunner()


@pytest.fixture
def resolver(kv, runner) -> RedirectResolver:
    return RedirectResolver(kv, MetricsStore(kv, clock=lambda: 1234), runner)


class TestResolve:
    async def test_hit_returns_url_and_counts_click(self, resolver, runner, kv):
        assert await resolver.resolve("gh") == "https://github.com/daveio"
        await runner.drain()
        data = kv.snapshot()
        assert data["metrics:redirect:gh:ok"] == "1"
        assert data["metrics:redirect:gh:last-hit"] == "1234"

    async def test_slug_is_looked_up_verbatim(self, resolver, runner, kv):
        with pytest.raises(NotFoundError):
            await resolver.resolve("GH")
        await runner.drain()
        assert kv.snapshot()["metrics:redirect:gh:error"] == "1"

    async def test_imported_slugs_resolve_as_listed(self, kv, runner):
        await import_document(
            kv,
            "redirect:\n  my_link: https://example.com/a\n  CV: https://example.com/cv.pdf\n",
        )
        resolver = RedirectResolver(kv, MetricsStore(kv, clock=lambda: 1234), runner)
        listed = {entry.slug: entry.url for entry in await resolver.list_redirects()}
        assert {"my_link", "CV"} <= listed.keys()
        for slug in ("my_link", "CV"):
            assert await resolver.resolve(slug) == listed[slug]
        await runner.drain()
        data = kv.snapshot()
        assert data["metrics:redirect:my-link:ok"] == "1"
        assert data["metrics:redirect:cv:ok"] == "1"

    async def test_miss_raises_and_counts_error(self, resolver, runner, kv):
        with pytest.raises(NotFoundError):
            await resolver.resolve("nope")
        await runner.drain()
        assert kv.snapshot()["metrics:redirect:nope:error"] == "1"

    async def test_metrics_failure_does_not_affect_resolution(self, kv, runner):
        metrics_kv = InMemoryKVStore()
        metrics_kv.fail_writes = True
        resolver = RedirectResolver(kv, MetricsStore(metrics_kv), runner)
        assert await resolver.resolve("gh") == "https://github.com/daveio"
        await runner.drain()

    async def test_lookup_failure_is_upstream_error(self, resolver, kv):
        kv.fail_reads = True
        with pytest.raises(UpstreamError):
            await resolver.resolve("gh")

    async def test_resolution_does_not_wait_for_metrics(self, resolver, runner):
        await resolver.resolve("gh")
        assert runner.pending == 1
        await runner.drain()


async def test_list_redirects(resolver):
    assert await resolver.list_redirects() == [
        RedirectEntry(slug="cv", url="https://dave.io/cv.pdf"),
        RedirectEntry(slug="gh", url="https://github.com/daveio"),
    ]
