"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppSettings
from errors import register_error_handlers
from infrastructure.ai.cloudflare import CloudflareAltTextProvider
from infrastructure.http_client import HttpClient
from infrastructure.kv.memory import InMemoryKVStore
from infrastructure.kv.protocol import KVStore
from infrastructure.kv.redis_store import RedisKVStore, create_redis_client
from infrastructure.storage.local import LocalImageStore
from middleware import register_metrics_middleware
from routes.admin_routes import router as admin_router
from routes.api_routes import router as api_router
from routes.health_routes import router as health_router
from routes.image_routes import router as image_router
from routes.redirect_routes import router as redirect_router
from shared.background import BestEffortRunner
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)

# Outstanding metrics writes get this long to finish at shutdown
SHUTDOWN_DRAIN_SECONDS = 5.0


async def _build_kv(settings: AppSettings) -> KVStore:
    if settings.kv.redis_uri:
        client = await create_redis_client(settings.kv.redis_uri)
        if client is not None:
            return RedisKVStore(client)
        log.warning("kv_fallback_to_memory", reason="redis_unavailable")
    else:
        log.info("kv_in_memory", reason="redis_not_configured")
    return InMemoryKVStore()


def create_app(
    settings: Optional[AppSettings] = None,
    kv: Optional[KVStore] = None,
) -> FastAPI:
    """Create and return a fully configured FastAPI application.

    *kv* overrides the configured store (tests pass an InMemoryKVStore).
    """
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging, production=settings.is_production)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        app.state.settings = settings
        app.state.kv = kv if kv is not None else await _build_kv(settings)
        app.state.runner = BestEffortRunner()
        app.state.http = HttpClient(timeout=settings.images.fetch_timeout_seconds)

        ai_http: Optional[HttpClient] = None
        app.state.ai_provider = None
        if settings.ai.is_configured:
            ai_http = HttpClient(timeout=settings.ai.ai_timeout_seconds)
            app.state.ai_provider = CloudflareAltTextProvider(
                account_id=settings.ai.cloudflare_account_id,
                api_token=settings.ai.cloudflare_api_token,
                model=settings.ai.ai_model,
                http_client=ai_http,
            )

        app.state.image_store = None
        if settings.images.image_store_dir:
            app.state.image_store = LocalImageStore(
                settings.images.image_store_dir, settings.images.image_public_base_url
            )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await app.state.runner.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        await app.state.http.aclose()
        if ai_http is not None:
            await ai_http.aclose()
        if isinstance(app.state.kv, RedisKVStore):
            await app.state.kv.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    register_metrics_middleware(app)
    app.include_router(health_router)
    app.include_router(api_router)
    app.include_router(image_router)
    app.include_router(admin_router)
    app.include_router(redirect_router)

    return app
