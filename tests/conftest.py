"""
Shared test configuration.

Runs every test from an empty temporary directory so pydantic-settings never
picks up the project's real .env file; tests control config exclusively
through constructor arguments and monkeypatch.setenv().
"""

import pytest

from infrastructure.kv.memory import InMemoryKVStore
from services.auth_service import issue_token
from tests.helpers import TEST_SECRET


@pytest.fixture(autouse=True)
def isolate_from_dotenv(monkeypatch, tmp_path):
    """Prevent pydantic-settings from loading a .env file in all tests."""
    monkeypatch.chdir(tmp_path)
    for name in ("JWT_SECRET", "REDIS_URI", "CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN", "ENV", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def kv() -> InMemoryKVStore:
    return InMemoryKVStore()


@pytest.fixture
def make_token():
    """Factory for signed test tokens: ``make_token("api", expires_in=60)``."""

    def _make(subject: str, secret: str = TEST_SECRET, **kwargs) -> str:
        return issue_token(subject, secret, **kwargs)

    return _make
