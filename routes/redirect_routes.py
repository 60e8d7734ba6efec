"""
GET /go/{slug} — 302 to the stored destination, 404 for unknown slugs.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from dependencies import get_redirect_resolver
from services.redirect_service import RedirectResolver

router = APIRouter(tags=["redirects"])


@router.get("/go/{slug}")
async def go(
    slug: str,
    resolver: RedirectResolver = Depends(get_redirect_resolver),
) -> RedirectResponse:
    url = await resolver.resolve(slug)
    return RedirectResponse(url=url, status_code=302)
