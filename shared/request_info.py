"""
Request introspection for FastAPI requests.

Pure helpers taking an explicit ``Request`` so they are testable without a
running server.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

_API_PREFIX = "/api/"


def get_client_ip(request: Request) -> str:
    """Extract the real client IP from a FastAPI ``Request``.

    Checks proxy headers in priority order before falling back to the
    direct connection address:

    1. ``CF-Connecting-IP`` — Cloudflare
    2. ``True-Client-IP`` — Akamai and others
    3. ``X-Forwarded-For`` — standard proxy header (first IP in list)
    4. ``X-Real-IP`` — nginx / other reverse proxies
    """
    for header in ("CF-Connecting-IP", "True-Client-IP", "X-Forwarded-For", "X-Real-IP"):
        ip_value: str | None = request.headers.get(header)
        if ip_value:
            client_ip = ip_value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else ""


def api_resource(path: str) -> Optional[str]:
    """Return the first path segment after ``/api/``, or None outside the API.

    ``/api/metrics`` → ``metrics``; ``/api/ai/alt`` → ``ai``; ``/go/gh`` → None.
    """
    if not path.startswith(_API_PREFIX):
        return None
    segment = path[len(_API_PREFIX):].split("/", 1)[0]
    return segment or None


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")
