"""KVStore protocol, implemented by the Redis and in-memory adapters.

Keys are flat strings, values are strings. There are no transactions and no
compare-and-set: writes are last-write-wins.
"""

from typing import Optional, Protocol


class KVStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list(self, prefix: str = "") -> list[str]: ...

    async def ping(self) -> bool: ...
