"""
Common response DTOs shared across endpoints.

ApiResponse     — success envelope wrapping every JSON result
HealthResponse  — GET /health
PingResponse    — GET /api/ping
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from errors import utc_timestamp


class ApiResponse(BaseModel):
    """``{ok: true, result, error: null, status, timestamp}``."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    result: Any = None
    error: Optional[str] = None
    status: int = 200
    timestamp: str


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]


class PingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service: str
    response: str


def api_response(result: Any, status_code: int = 200) -> JSONResponse:
    """Wrap *result* (a DTO, dict, list or scalar) in the success envelope."""
    if isinstance(result, BaseModel):
        result = result.model_dump(mode="json", by_alias=True)
    body = ApiResponse(result=result, status=status_code, timestamp=utc_timestamp())
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
