"""In-process KVStore used when Redis is not configured, and in tests.

State lives for the lifetime of the process only. ``fail_writes`` /
``fail_reads`` let tests simulate an unavailable store.
"""

from typing import Optional


class KVUnavailableError(RuntimeError):
    pass


class InMemoryKVStore:
    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise KVUnavailableError(f"read failed for {key}")
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise KVUnavailableError(f"write failed for {key}")
        self._data[key] = str(value)

    async def delete(self, key: str) -> None:
        if self.fail_writes:
            raise KVUnavailableError(f"delete failed for {key}")
        self._data.pop(key, None)

    async def list(self, prefix: str = "") -> list[str]:
        if self.fail_reads:
            raise KVUnavailableError(f"list failed for {prefix!r}")
        return sorted(k for k in self._data if k.startswith(prefix))

    async def ping(self) -> bool:
        return not self.fail_reads

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)
