"""
Fixtures for full-application tests.

``build_app`` runs the real ``create_app`` factory against an in-memory KV
store; no Redis, Cloudflare or filesystem configuration is needed.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app import create_app
from config import AppSettings, ImageSettings, JWTSettings
from tests.helpers import TEST_SECRET


@pytest.fixture
def build_app(kv):
    def _build(**image_overrides) -> FastAPI:
        settings = AppSettings(
            jwt=JWTSettings(jwt_secret=TEST_SECRET),
            images=ImageSettings(**image_overrides),
        )
        return create_app(settings, kv=kv)

    return _build


@pytest.fixture
def client(build_app):
    with TestClient(build_app()) as test_client:
        yield test_client


@pytest.fixture
def auth(make_token):
    """``auth("api:metrics")`` → Authorization header dict for that scope."""

    def _headers(scope: str, **kwargs) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(scope, **kwargs)}"}

    return _headers
