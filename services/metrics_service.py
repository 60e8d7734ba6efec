"""
KV-backed metrics recording.

Counters are decimal strings and timestamps are epoch milliseconds, one
scalar per key (see shared.kv_keys for the key space).

Known limitation: ``increment`` is a read-modify-write against a store with
no transactions. Two concurrent increments of the same key can lose one
update. Counts are exact under sequential access and never decrease.

Recording is best-effort everywhere: a failed write is logged and swallowed,
so a request that did its job is never turned into an error by metrics.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from fastapi import Request

from infrastructure.kv.protocol import KVStore
from shared import kv_keys
from shared.bot_detection import VisitorClass, classify_visitor
from shared.logging import get_logger, should_sample
from shared.request_info import api_resource, get_user_agent

log = get_logger(__name__)

RedirectOutcome = Literal["ok", "error"]


def now_millis() -> int:
    return int(time.time() * 1000)


def parse_counter(raw: Optional[str]) -> int:
    """Absent or non-numeric values count as zero."""
    if raw is None:
        return 0
    try:
        return int(raw)
    except ValueError:
        return 0


@dataclass(frozen=True)
class RequestMetricsContext:
    """What metrics need from a request, captured before the response is sent."""

    resource: Optional[str]
    visitor: VisitorClass

    @classmethod
    def from_request(cls, request: Request) -> "RequestMetricsContext":
        return cls(
            resource=api_resource(request.url.path),
            visitor=classify_visitor(get_user_agent(request)),
        )


class MetricsStore:
    def __init__(self, kv: KVStore, clock: Callable[[], int] = now_millis) -> None:
        self._kv = kv
        self._clock = clock

    # ── Primitives ────────────────────────────────────────────────────────────

    async def increment(self, key: str) -> Optional[int]:
        """Add one to the counter at *key*; return the new value, or None if the write failed."""
        try:
            value = parse_counter(await self._kv.get(key)) + 1
            await self._kv.put(key, str(value))
        except Exception as e:
            log.warning(
                "metrics_increment_failed",
                kv_key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        if should_sample("metrics_write"):
            log.debug("metrics_incremented", kv_key=key, value=value)
        return value

    async def set_timestamp(self, key: str, when_millis: Optional[int] = None) -> bool:
        when = self._clock() if when_millis is None else when_millis
        try:
            await self._kv.put(key, str(int(when)))
        except Exception as e:
            log.warning(
                "metrics_timestamp_failed",
                kv_key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True

    async def get(self, key: str) -> Optional[str]:
        return await self._kv.get(key)

    async def get_int(self, key: str) -> int:
        return parse_counter(await self._kv.get(key))

    async def scan(self, prefix: str) -> list[tuple[str, str]]:
        """Return ``(key, value)`` pairs under *prefix*, skipping keys deleted mid-scan."""
        pairs = []
        for key in await self._kv.list(prefix):
            value = await self._kv.get(key)
            if value is not None:
                pairs.append((key, value))
        return pairs

    # ── Request metrics ───────────────────────────────────────────────────────

    async def record_api_metrics(
        self, context: RequestMetricsContext, status_code: int
    ) -> None:
        ok = status_code < 400
        await self.increment(kv_keys.outcome_key(ok))
        await self.increment(kv_keys.status_key(status_code))
        await self.increment(kv_keys.visitor_key(context.visitor))
        await self.set_timestamp(kv_keys.last_request_key())

        if context.resource:
            await self.increment(kv_keys.resource_outcome_key(context.resource, ok))
            await self.set_timestamp(kv_keys.resource_last_hit_key(context.resource))

    async def record_api_error_metrics(
        self, context: RequestMetricsContext, error: BaseException
    ) -> None:
        status_code = getattr(error, "status_code", 500)
        error_code = getattr(error, "error_code", "internal_error")

        await self.record_api_metrics(context, status_code)
        await self.increment(kv_keys.error_code_key(error_code))
        await self.set_timestamp(kv_keys.last_error_key())
        if context.resource:
            await self.set_timestamp(kv_keys.resource_last_error_key(context.resource))

    async def update_redirect_metrics(self, slug: str, outcome: RedirectOutcome) -> None:
        await self.increment(kv_keys.redirect_outcome_key(slug, outcome == "ok"))
        await self.set_timestamp(kv_keys.redirect_last_hit_key(slug))

    async def record_auth_failure(self, reason: str) -> None:
        await self.increment(kv_keys.auth_failure_key(reason))

    async def record_token_usage(self, token_id: str) -> None:
        await self.increment(kv_keys.token_usage_key(token_id))
        await self.set_timestamp(kv_keys.token_last_used_key(token_id))
