"""
Hashing helpers.

SHA-256 content hashes name optimised images so identical output always maps
to the same object name suffix.
"""

from __future__ import annotations

import hashlib
import time
from typing import Optional

CONTENT_HASH_LENGTH = 16


def content_hash(data: bytes, length: int = CONTENT_HASH_LENGTH) -> str:
    """Return the first *length* hex characters of SHA-256(*data*)."""
    return hashlib.sha256(data).hexdigest()[:length]


def content_filename(
    data: bytes, extension: str = "webp", unix_time: Optional[int] = None
) -> str:
    """Build ``{unix_time}-{content_hash}.{extension}`` for *data*."""
    if unix_time is None:
        unix_time = int(time.time())
    return f"{unix_time}-{content_hash(data)}.{extension}"
