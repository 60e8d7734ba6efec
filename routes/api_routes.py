"""
General API endpoints.

GET /api/ping       — liveness reply, public
GET /api/auth       — echo the caller's token identity
GET /api/metrics    — aggregated metrics (json | yaml | prometheus), api:metrics
GET /api/redirects  — every configured redirect, public; 404 when none exist
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST

from dependencies import get_metrics, get_redirect_resolver, require_scope
from errors import NotFoundError, UpstreamError, ValidationError
from schemas.dto.responses.auth import IdentityResponse
from schemas.dto.responses.common import PingResponse, api_response
from services.auth_service import AuthenticatedIdentity
from services.metrics_service import MetricsStore
from services.metrics_view import build_metrics_view, render_prometheus, render_yaml
from services.redirect_service import RedirectResolver

router = APIRouter(prefix="/api", tags=["api"])

METRICS_FORMATS = ("json", "yaml", "prometheus")


@router.get("/ping")
async def ping() -> Response:
    return api_response(PingResponse(service="api", response="pong"))


@router.get("/auth")
async def auth_identity(
    identity: AuthenticatedIdentity = Depends(require_scope()),
) -> Response:
    return api_response(
        IdentityResponse(
            subject=identity.subject,
            token_id=identity.token_id,
            issued_at=identity.issued_at,
            expires_at=identity.expires_at,
        )
    )


@router.get("/metrics")
async def metrics(
    requested_format: str = Query(default="json", alias="format"),
    identity: AuthenticatedIdentity = Depends(require_scope("api:metrics")),
    store: MetricsStore = Depends(get_metrics),
) -> Response:
    fmt = requested_format.strip().lower()
    if fmt not in METRICS_FORMATS:
        raise ValidationError(
            f"format must be one of: {', '.join(METRICS_FORMATS)}", field="format"
        )

    try:
        view = await build_metrics_view(store)
    except Exception as e:
        raise UpstreamError("Metrics read failed", details={"error": str(e)}) from e

    if fmt == "yaml":
        return Response(content=render_yaml(view), media_type="application/yaml")
    if fmt == "prometheus":
        return Response(content=render_prometheus(view), media_type=CONTENT_TYPE_LATEST)
    return api_response(view)


@router.get("/redirects")
async def list_redirects(
    resolver: RedirectResolver = Depends(get_redirect_resolver),
) -> Response:
    try:
        entries = await resolver.list_redirects()
    except Exception as e:
        raise UpstreamError("Redirect listing failed", details={"error": str(e)}) from e
    if not entries:
        raise NotFoundError("No redirects found")
    return api_response(
        {"redirects": [{"slug": entry.slug, "url": entry.url} for entry in entries]}
    )
