"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Long-lived collaborators (KV store, HTTP client,
best-effort runner, AI provider, image store) are created once in the app
lifespan and read from ``app.state``.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Request

from config import AppSettings
from errors import AuthenticationError, ForbiddenError
from infrastructure.ai.protocol import AltTextProvider
from infrastructure.http_client import HttpClient
from infrastructure.kv.protocol import KVStore
from infrastructure.storage.protocol import ImageStore
from services.auth_service import (
    AuthenticatedIdentity,
    AuthFailure,
    AuthFailureReason,
    TokenValidator,
    extract_token,
)
from services.metrics_service import MetricsStore
from services.redirect_service import RedirectResolver
from shared.background import BestEffortRunner
from shared.logging import get_logger, hash_ip
from shared.permissions import authorize
from shared.request_info import get_client_ip

log = get_logger(__name__)


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_kv(request: Request) -> KVStore:
    return request.app.state.kv


def get_runner(request: Request) -> BestEffortRunner:
    return request.app.state.runner


def get_http(request: Request) -> HttpClient:
    return request.app.state.http


def get_ai_provider(request: Request) -> Optional[AltTextProvider]:
    """Return the alt-text provider, or None when AI is not configured."""
    return request.app.state.ai_provider


def get_image_store(request: Request) -> Optional[ImageStore]:
    """Return the image store, or None when persistence is disabled."""
    return request.app.state.image_store


def get_metrics(kv: KVStore = Depends(get_kv)) -> MetricsStore:
    return MetricsStore(kv)


def get_redirect_resolver(
    kv: KVStore = Depends(get_kv),
    metrics: MetricsStore = Depends(get_metrics),
    runner: BestEffortRunner = Depends(get_runner),
) -> RedirectResolver:
    return RedirectResolver(kv, metrics, runner)


def get_token_validator(
    settings: AppSettings = Depends(get_settings),
    kv: KVStore = Depends(get_kv),
) -> TokenValidator:
    return TokenValidator(
        settings.jwt.jwt_secret, kv, leeway=settings.jwt.jwt_leeway_seconds
    )


def require_scope(
    scope: Optional[str] = None,
) -> Callable[..., Awaitable[AuthenticatedIdentity]]:
    """Build a dependency that authenticates the caller and checks *scope*.

    With ``scope=None`` any valid token is accepted. Rejections are counted
    under ``metrics:auth:failed:<reason>`` on the best-effort runner.
    """

    async def dependency(
        request: Request,
        validator: TokenValidator = Depends(get_token_validator),
        metrics: MetricsStore = Depends(get_metrics),
        runner: BestEffortRunner = Depends(get_runner),
    ) -> AuthenticatedIdentity:
        raw_token = extract_token(request.headers, request.query_params)
        result = await validator.validate(raw_token)

        if isinstance(result, AuthFailure):
            _record_failure(runner, metrics, result.reason)
            log.info(
                "auth_rejected",
                reason=result.reason.value,
                path=request.url.path,
                client_ip=hash_ip(get_client_ip(request)),
            )
            raise AuthenticationError(result.message, details={"reason": result.reason.value})

        if scope is not None and not authorize(result.subject, scope):
            _record_failure(runner, metrics, AuthFailureReason.INSUFFICIENT_SCOPE)
            log.info(
                "auth_forbidden",
                subject=result.subject,
                required_scope=scope,
                path=request.url.path,
            )
            raise ForbiddenError(
                "Insufficient permissions",
                details={"reason": AuthFailureReason.INSUFFICIENT_SCOPE.value},
            )

        if result.token_id:
            runner.spawn(
                metrics.record_token_usage(result.token_id),
                label=f"token-usage:{result.token_id}",
            )
        return result

    return dependency


def _record_failure(
    runner: BestEffortRunner, metrics: MetricsStore, reason: AuthFailureReason
) -> None:
    runner.spawn(metrics.record_auth_failure(reason.value), label=f"auth-failure:{reason.value}")
