"""
Image endpoints.

GET  /api/images/optimise?url=&quality=&lossy=     api:images
POST /api/images/optimise  JSON {image, quality?, lossy?} or multipart
GET  /api/ai/alt?url=                               ai:alt
POST /api/ai/alt           raw base64 body or multipart ``image`` field

Inputs are capped at ``max_input_bytes`` after decoding. Alt-text requests
are re-encoded under ``alt_target_bytes`` before inference; optimised
images are persisted when an image store is configured.
"""

from __future__ import annotations

import base64
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from config import AppSettings
from dependencies import (
    get_ai_provider,
    get_http,
    get_image_store,
    get_settings,
    require_scope,
)
from errors import UpstreamError, ValidationError
from infrastructure.ai.protocol import AltTextProvider
from infrastructure.http_client import HttpClient
from infrastructure.storage.protocol import ImageStore
from schemas.dto.requests.images import OptimiseImageRequest
from schemas.dto.responses.common import api_response
from schemas.dto.responses.images import AltTextResponse, OptimisedImageResponse
from services.auth_service import AuthenticatedIdentity
from services.image_service import (
    OUTPUT_CONTENT_TYPE,
    OptimisationResult,
    optimise,
    optimise_for_size,
)
from services.image_source import fetch_image
from shared.crypto import content_filename
from shared.logging import get_logger
from shared.validators import (
    check_size,
    decode_base64_image,
    parse_bool,
    validate_quality,
)

log = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["images"])

UPLOAD_FIELD = "image"


# ── Helpers ───────────────────────────────────────────────────────────────────


def _is_multipart(request: Request) -> bool:
    return request.headers.get("content-type", "").lower().startswith("multipart/form-data")


async def _read_upload(request: Request, max_bytes: int) -> tuple[bytes, dict[str, str]]:
    """Return the uploaded image bytes plus the remaining text form fields."""
    form = await request.form()
    upload = form.get(UPLOAD_FIELD)
    fields = {k: v for k, v in form.items() if isinstance(v, str)}
    if isinstance(upload, UploadFile):
        data = await upload.read(max_bytes + 1)
        return check_size(data, max_bytes), fields
    if isinstance(upload, str):
        return decode_base64_image(upload, max_bytes), fields
    raise ValidationError("Multipart form needs an 'image' field", field=UPLOAD_FIELD)


def _form_quality(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return validate_quality(int(value))
    except ValueError as e:
        raise ValidationError("quality must be an integer", field="quality") from e


async def _store(store: Optional[ImageStore], result: OptimisationResult) -> Optional[str]:
    if store is None:
        return None
    filename = content_filename(result.buffer)
    result.url = await store.put(filename, result.buffer, OUTPUT_CONTENT_TYPE)
    return result.url


def _optimised_response(original_size: int, result: OptimisationResult) -> Response:
    return api_response(
        OptimisedImageResponse(
            image=base64.b64encode(result.buffer).decode("ascii"),
            content_type=OUTPUT_CONTENT_TYPE,
            width=result.width,
            height=result.height,
            quality=result.quality,
            lossless=result.lossless,
            original_size_bytes=original_size,
            optimised_size_bytes=result.size,
            compression_ratio=result.compression_ratio,
            url=result.url,
        )
    )


# ── Optimise ──────────────────────────────────────────────────────────────────


async def _run_optimise(
    data: bytes,
    quality: Optional[int],
    lossy: Optional[bool],
    settings: AppSettings,
    store: Optional[ImageStore],
) -> Response:
    result = await run_in_threadpool(
        optimise, data, quality, lossy, settings.images.default_lossy_quality
    )
    await _store(store, result)
    return _optimised_response(len(data), result)


@router.get("/images/optimise")
async def optimise_from_url(
    url: Optional[str] = Query(default=None),
    quality: Optional[int] = Query(default=None),
    lossy: Optional[str] = Query(default=None),
    identity: AuthenticatedIdentity = Depends(require_scope("api:images")),
    settings: AppSettings = Depends(get_settings),
    http: HttpClient = Depends(get_http),
    store: Optional[ImageStore] = Depends(get_image_store),
) -> Response:
    quality = validate_quality(quality)
    lossy_flag = parse_bool(lossy, "lossy")
    data = await fetch_image(http, url or "", settings.images.max_input_bytes)
    return await _run_optimise(data, quality, lossy_flag, settings, store)


@router.post("/images/optimise")
async def optimise_upload(
    request: Request,
    identity: AuthenticatedIdentity = Depends(require_scope("api:images")),
    settings: AppSettings = Depends(get_settings),
    store: Optional[ImageStore] = Depends(get_image_store),
) -> Response:
    max_bytes = settings.images.max_input_bytes

    if _is_multipart(request):
        data, fields = await _read_upload(request, max_bytes)
        quality = _form_quality(fields.get("quality"))
        lossy = parse_bool(fields.get("lossy"), "lossy")
    else:
        try:
            body = OptimiseImageRequest.model_validate(await request.json())
        except ValueError as e:
            # pydantic ValidationError and JSONDecodeError are both ValueErrors
            message = "Invalid request body"
            if isinstance(e, PydanticValidationError) and e.errors():
                first = e.errors()[0]
                message = f"{'.'.join(str(p) for p in first['loc'])}: {first['msg']}"
            raise ValidationError(message) from e
        data = decode_base64_image(body.image, max_bytes)
        quality, lossy = body.quality, body.lossy

    return await _run_optimise(data, quality, lossy, settings, store)


# ── Alt text ──────────────────────────────────────────────────────────────────


async def _generate_alt_text(
    data: bytes,
    source: str,
    identity: AuthenticatedIdentity,
    settings: AppSettings,
    provider: Optional[AltTextProvider],
    store: Optional[ImageStore],
) -> Response:
    if provider is None:
        raise UpstreamError("AI service not available")

    started = time.perf_counter()
    result = await run_in_threadpool(
        optimise_for_size,
        data,
        settings.images.alt_target_bytes,
        min_long_edge=settings.images.min_long_edge,
    )
    await _store(store, result)
    alt_text = await provider.describe(result.buffer)
    processing_ms = int((time.perf_counter() - started) * 1000)

    log.info(
        "alt_text_generated",
        subject=identity.subject,
        original_size=len(data),
        optimised_size=result.size,
        compression_ratio=round(result.compression_ratio, 2),
        processing_ms=processing_ms,
    )
    return api_response(
        AltTextResponse(
            alt_text=alt_text,
            image_source=source,
            model=provider.model,
            processing_time_ms=processing_ms,
            original_image_size_bytes=len(data),
            optimised_image_size_bytes=result.size,
            compression_ratio=result.compression_ratio,
            optimised_image_url=result.url,
        )
    )


@router.get("/ai/alt")
async def alt_text_from_url(
    url: Optional[str] = Query(default=None),
    identity: AuthenticatedIdentity = Depends(require_scope("ai:alt")),
    settings: AppSettings = Depends(get_settings),
    http: HttpClient = Depends(get_http),
    provider: Optional[AltTextProvider] = Depends(get_ai_provider),
    store: Optional[ImageStore] = Depends(get_image_store),
) -> Response:
    data = await fetch_image(http, url or "", settings.images.max_input_bytes)
    return await _generate_alt_text(data, url or "", identity, settings, provider, store)


@router.post("/ai/alt")
async def alt_text_upload(
    request: Request,
    identity: AuthenticatedIdentity = Depends(require_scope("ai:alt")),
    settings: AppSettings = Depends(get_settings),
    provider: Optional[AltTextProvider] = Depends(get_ai_provider),
    store: Optional[ImageStore] = Depends(get_image_store),
) -> Response:
    max_bytes = settings.images.max_input_bytes
    if _is_multipart(request):
        data, _ = await _read_upload(request, max_bytes)
        source = "upload"
    else:
        data = decode_base64_image(await request.body(), max_bytes)
        source = "base64"
    return await _generate_alt_text(data, source, identity, settings, provider, store)
