"""Unit tests for KV-backed metrics recording."""

from unittest.mock import MagicMock

import pytest

from errors import NotFoundError, UpstreamError
from services.metrics_service import MetricsStore, RequestMetricsContext, parse_counter

NOW = 1_700_000_000_000


@pytest.fixture
def store(kv) -> MetricsStore:
    return MetricsStore(kv, clock=lambda: NOW)


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 0), ("0", 0), ("41", 41), ("abc", 0), ("", 0)],
)
def test_parse_counter(raw, expected):
    assert parse_counter(raw) == expected


class TestIncrement:
    async def test_sequential_increments_are_exact(self, store, kv):
        for _ in range(25):
            await store.increment("metrics:ok")
        assert kv.snapshot()["metrics:ok"] == "25"

    async def test_returns_new_value(self, store):
        assert await store.increment("metrics:ok") == 1
        assert await store.increment("metrics:ok") == 2

    async def test_non_numeric_value_restarts_at_one(self, store, kv):
        await kv.put("metrics:ok", "garbage")
        assert await store.increment("metrics:ok") == 1

    async def test_write_failure_is_swallowed(self, store, kv):
        kv.fail_writes = True
        assert await store.increment("metrics:ok") is None

    async def test_read_failure_is_swallowed(self, store, kv):
        kv.fail_reads = True
        assert await store.increment("metrics:ok") is None


class TestSetTimestamp:
    async def test_uses_clock(self, store, kv):
        assert await store.set_timestamp("metrics:last-request") is True
        assert kv.snapshot()["metrics:last-request"] == str(NOW)

    async def test_explicit_time(self, store, kv):
        await store.set_timestamp("metrics:last-request", 5)
        assert kv.snapshot()["metrics:last-request"] == "5"

    async def test_failure_returns_false(self, store, kv):
        kv.fail_writes = True
        assert await store.set_timestamp("metrics:last-request") is False


async def test_scan_returns_pairs_under_prefix(store, kv):
    await kv.put("metrics:status:200", "3")
    await kv.put("metrics:status:404", "1")
    await kv.put("metrics:ok", "4")
    assert await store.scan("metrics:status:") == [
        ("metrics:status:200", "3"),
        ("metrics:status:404", "1"),
    ]


class TestRecordApiMetrics:
    async def test_success(self, store, kv):
        ctx = RequestMetricsContext(resource="metrics", visitor="human")
        await store.record_api_metrics(ctx, 200)
        assert kv.snapshot() == {
            "metrics:ok": "1",
            "metrics:status:200": "1",
            "metrics:visitor:human": "1",
            "metrics:last-request": str(NOW),
            "metrics:resources:metrics:ok": "1",
            "metrics:resources:metrics:last-hit": str(NOW),
        }

    async def test_client_error_counts_as_error(self, store, kv):
        ctx = RequestMetricsContext(resource="ai", visitor="bot")
        await store.record_api_metrics(ctx, 404)
        data = kv.snapshot()
        assert data["metrics:error"] == "1"
        assert data["metrics:resources:ai:error"] == "1"
        assert "metrics:ok" not in data

    async def test_no_resource(self, store, kv):
        ctx = RequestMetricsContext(resource=None, visitor="unknown")
        await store.record_api_metrics(ctx, 200)
        assert not any(k.startswith("metrics:resources:") for k in kv.snapshot())

    async def test_error_metrics_use_error_code(self, store, kv):
        ctx = RequestMetricsContext(resource="redirects", visitor="human")
        await store.record_api_error_metrics(ctx, NotFoundError("missing"))
        data = kv.snapshot()
        assert data["metrics:status:404"] == "1"
        assert data["metrics:errors:not-found"] == "1"
        assert data["metrics:last-error"] == str(NOW)
        assert data["metrics:resources:redirects:last-error"] == str(NOW)

    async def test_error_metrics_for_plain_exception(self, store, kv):
        ctx = RequestMetricsContext(resource=None, visitor="human")
        await store.record_api_error_metrics(ctx, RuntimeError("boom"))
        data = kv.snapshot()
        assert data["metrics:status:500"] == "1"
        assert data["metrics:errors:internal-error"] == "1"

    async def test_upstream_error_status(self, store, kv):
        ctx = RequestMetricsContext(resource="ai", visitor="human")
        await store.record_api_error_metrics(ctx, UpstreamError("ai down"))
        assert kv.snapshot()["metrics:status:503"] == "1"

    async def test_never_raises_when_kv_down(self, store, kv):
        kv.fail_writes = True
        ctx = RequestMetricsContext(resource="ai", visitor="human")
        await store.record_api_metrics(ctx, 200)
        assert kv.snapshot() == {}


class TestRedirectAndAuthMetrics:
    async def test_redirect_ok(self, store, kv):
        await store.update_redirect_metrics("gh", "ok")
        await store.update_redirect_metrics("gh", "ok")
        data = kv.snapshot()
        assert data["metrics:redirect:gh:ok"] == "2"
        assert data["metrics:redirect:gh:last-hit"] == str(NOW)

    async def test_redirect_error(self, store, kv):
        await store.update_redirect_metrics("missing", "error")
        assert kv.snapshot()["metrics:redirect:missing:error"] == "1"

    async def test_auth_failure(self, store, kv):
        await store.record_auth_failure("expired")
        assert kv.snapshot() == {"metrics:auth:failed:expired": "1"}

    async def test_token_usage(self, store, kv):
        await store.record_token_usage("tok-1")
        assert kv.snapshot() == {
            "auth:token:tok-1:usage": "1",
            "auth:token:tok-1:last-used": str(NOW),
        }


def test_context_from_request():
    request = MagicMock()
    request.url.path = "/api/metrics"
    request.headers = {"user-agent": "curl/8.4.0"}
    ctx = RequestMetricsContext.from_request(request)
    assert ctx.resource == "metrics"
    assert ctx.visitor == "bot"
