"""Getting image bytes into the optimiser: remote URLs and uploads.

Every path enforces the same decoded-size budget before any decoding work.
"""

from __future__ import annotations

import httpx

from errors import PayloadTooLargeError, ValidationError
from infrastructure.http_client import HttpClient, ResponseTooLargeError
from shared.logging import get_logger
from shared.validators import check_size, validate_url

log = get_logger(__name__)


async def fetch_image(http: HttpClient, url: str, max_bytes: int) -> bytes:
    """Download an image, rejecting non-images, failed fetches and oversize bodies."""
    url = validate_url(url)
    try:
        body = await http.fetch_limited(url, max_bytes)
    except ResponseTooLargeError as e:
        raise PayloadTooLargeError(
            f"Image exceeds {max_bytes} bytes", field="url", details={"limit": max_bytes}
        ) from e
    except httpx.HTTPError as e:
        log.warning("image_fetch_failed", url=url, error=str(e), error_type=type(e).__name__)
        raise ValidationError("Could not fetch image from URL", field="url") from e

    if body.status_code >= 400:
        raise ValidationError(
            f"Image URL returned HTTP {body.status_code}", field="url"
        )
    content_type = (body.content_type or "").split(";")[0].strip().lower()
    if content_type and not content_type.startswith("image/"):
        raise ValidationError("URL does not point to an image", field="url")

    return check_size(body.content, max_bytes)
