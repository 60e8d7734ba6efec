"""Redis-backed KVStore.

Plain GET/SET only. Counter increments are done by the metrics layer as
read-modify-write on top of this adapter, matching the semantics of an
eventually-consistent edge KV, so Redis INCR is not used.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.logging import get_logger

log = get_logger(__name__)

_SCAN_BATCH = 500


async def create_redis_client(redis_uri: str) -> Optional[aioredis.Redis]:
    """Connect to Redis and return a client, or None on failure."""
    try:
        client: aioredis.Redis = aioredis.from_url(redis_uri, decode_responses=True)
        await client.ping()
        log.info("redis_connected", uri=redis_uri.split("@")[-1])  # mask credentials
        return client
    except RedisError as e:
        log.warning(
            "redis_connection_failed", error=str(e), error_type=type(e).__name__
        )
        return None


class RedisKVStore:
    def __init__(self, redis_client: aioredis.Redis) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def put(self, key: str, value: str) -> None:
        await self._redis.set(key, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def list(self, prefix: str = "") -> list[str]:
        keys = [
            key
            async for key in self._redis.scan_iter(match=f"{prefix}*", count=_SCAN_BATCH)
        ]
        return sorted(set(keys))

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            log.warning("redis_ping_failed", error=str(e))
            return False

    async def aclose(self) -> None:
        await self._redis.aclose()
