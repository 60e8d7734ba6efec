"""
Input validators: framework-agnostic, pure functions.

Each validator raises ``errors.ValidationError`` (or a subclass) with a
client-safe message; none of them touch the network or the KV store.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Optional

import validators as _validators

from errors import PayloadTooLargeError, ValidationError

QUALITY_MIN = 1
QUALITY_MAX = 100

_DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,", re.IGNORECASE)
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def validate_url(url: Optional[str], field: str = "url") -> str:
    """Return *url* stripped if it is an absolute http(s) URL."""
    if not url or not url.strip():
        raise ValidationError("Image URL is required (url parameter)", field=field)
    url = url.strip()
    if not url.lower().startswith(("http://", "https://")):
        raise ValidationError("URL must use http or https", field=field)
    if not _validators.url(url):
        raise ValidationError("URL is not valid", field=field)
    return url


def validate_quality(quality: Optional[int]) -> Optional[int]:
    if quality is None:
        return None
    if not QUALITY_MIN <= quality <= QUALITY_MAX:
        raise ValidationError(
            f"quality must be between {QUALITY_MIN} and {QUALITY_MAX}",
            field="quality",
        )
    return quality


def parse_bool(value: Optional[str], field: str) -> Optional[bool]:
    """Parse a query-string boolean; ``None`` means the caller did not say."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValidationError(f"{field} must be a boolean", field=field)


def decode_base64_image(payload: str | bytes, max_bytes: int) -> bytes:
    """Decode a base64 (optionally ``data:`` URL) image and enforce *max_bytes*.

    The size limit applies to the decoded bytes, not the encoded text.
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("ascii")
        except UnicodeDecodeError as e:
            raise ValidationError("Image body must be base64 text", field="image") from e

    text = _DATA_URL_PREFIX.sub("", payload.strip())
    text = "".join(text.split())
    if not text:
        raise ValidationError("Image data is required", field="image")

    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Image data is not valid base64", field="image") from e

    check_size(data, max_bytes)
    return data


def check_size(data: bytes, max_bytes: int) -> bytes:
    if not data:
        raise ValidationError("Image data is empty", field="image")
    if len(data) > max_bytes:
        raise PayloadTooLargeError(
            f"Image exceeds {max_bytes} bytes",
            field="image",
            details={"size": len(data), "limit": max_bytes},
        )
    return data
