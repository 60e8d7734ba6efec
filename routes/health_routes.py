"""
Health check endpoint.

GET /health — checks KV connectivity and reports optional collaborators.
Rules:
- KV failure → "unhealthy" (503).
- AI or image storage not configured → "degraded" (200).
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from schemas.dto.responses.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        kv_ok = await request.app.state.kv.ping()
    except Exception:
        kv_ok = False
    checks["kv"] = "ok" if kv_ok else "error"
    if not kv_ok:
        overall = "unhealthy"

    optional = {
        "ai": request.app.state.ai_provider,
        "image_store": request.app.state.image_store,
    }
    for name, collaborator in optional.items():
        if collaborator is None:
            checks[name] = "not_configured"
            if overall == "healthy":
                overall = "degraded"
        else:
            checks[name] = "ok"

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content=HealthResponse(status=overall, checks=checks).model_dump(),
    )
