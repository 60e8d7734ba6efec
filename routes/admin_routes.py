"""
Admin endpoints (scope ``admin``).

GET  /api/admin/kv/export?format=yaml|json&all=false
POST /api/admin/kv/import                          raw YAML/JSON document
POST /api/admin/tokens/{token_id}/revoke
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from config import AppSettings
from dependencies import get_kv, get_settings, require_scope
from errors import PayloadTooLargeError, UpstreamError, ValidationError
from infrastructure.kv.protocol import KVStore
from schemas.dto.responses.auth import ImportResponse, RevocationResponse
from schemas.dto.responses.common import api_response
from services.auth_service import AuthenticatedIdentity, revoke_token
from services.kv_document import dump_document, export_namespace, import_document
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

MEDIA_TYPES = {"yaml": "application/yaml", "json": "application/json"}
MAX_IMPORT_BYTES = 5 * 1024 * 1024


def _backup_filename(fmt: str) -> str:
    return f"kv-{datetime.now(timezone.utc).strftime('%Y-%m-%d-%H%M%S')}.{fmt}"


@router.get("/kv/export")
async def export_kv(
    requested_format: str = Query(default="yaml", alias="format"),
    include_all: bool = Query(default=False, alias="all"),
    identity: AuthenticatedIdentity = Depends(require_scope("admin")),
    settings: AppSettings = Depends(get_settings),
    kv: KVStore = Depends(get_kv),
) -> Response:
    fmt = requested_format.strip().lower()
    if fmt not in MEDIA_TYPES:
        raise ValidationError("format must be one of: yaml, json", field="format")

    try:
        document = await export_namespace(
            kv, settings.kv.kv_backup_patterns, include_all=include_all
        )
    except ValidationError:
        raise
    except Exception as e:
        raise UpstreamError("KV export failed", details={"error": str(e)}) from e

    log.info("kv_export_requested", subject=identity.subject, include_all=include_all)
    return Response(
        content=dump_document(document, fmt),
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{_backup_filename(fmt)}"'},
    )


@router.post("/kv/import")
async def import_kv(
    request: Request,
    identity: AuthenticatedIdentity = Depends(require_scope("admin")),
    kv: KVStore = Depends(get_kv),
) -> Response:
    raw = await request.body()
    if len(raw) > MAX_IMPORT_BYTES:
        raise PayloadTooLargeError("Import document is too large")
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError("Import document must be UTF-8") from e

    try:
        count = await import_document(kv, text)
    except ValidationError:
        raise
    except Exception as e:
        raise UpstreamError("KV import failed", details={"error": str(e)}) from e

    log.info("kv_import_completed", subject=identity.subject, imported=count)
    return api_response(ImportResponse(imported=count))


@router.post("/tokens/{token_id}/revoke")
async def revoke(
    token_id: str,
    identity: AuthenticatedIdentity = Depends(require_scope("admin")),
    kv: KVStore = Depends(get_kv),
) -> Response:
    try:
        key = await revoke_token(kv, token_id)
    except Exception as e:
        raise UpstreamError("Token revocation failed", details={"error": str(e)}) from e
    return api_response(RevocationResponse(token_id=token_id, key=key))
