"""Unit tests for AppSettings and sub-configs."""

import pytest

from config import (
    DEFAULT_BACKUP_PATTERNS,
    AISettings,
    AppSettings,
    ImageSettings,
    JWTSettings,
    KVSettings,
    LoggingSettings,
)


class TestKVSettings:
    def test_redis_uri_optional(self):
        assert KVSettings().redis_uri is None

    def test_redis_uri_loaded(self, monkeypatch):
        monkeypatch.setenv("REDIS_URI", "redis://localhost:6379")
        assert KVSettings().redis_uri == "redis://localhost:6379"

    def test_default_backup_patterns(self):
        assert KVSettings().kv_backup_patterns == DEFAULT_BACKUP_PATTERNS


class TestJWTSettings:
    def test_defaults(self):
        s = JWTSettings()
        assert s.jwt_secret == ""
        assert s.jwt_leeway_seconds == 0

    def test_secret_from_env(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "s3cret")
        assert JWTSettings().jwt_secret == "s3cret"


@pytest.mark.parametrize(
    "account_id, api_token, expected",
    [
        ("acct", "token", True),
        ("acct", "", False),
        ("", "", False),
    ],
    ids=["both_present", "token_missing", "both_missing"],
)
def test_ai_is_configured(account_id, api_token, expected):
    s = AISettings(cloudflare_account_id=account_id, cloudflare_api_token=api_token)
    assert s.is_configured is expected


class TestImageSettings:
    def test_defaults(self):
        s = ImageSettings()
        assert s.alt_target_bytes == 4 * 1024 * 1024
        assert s.max_input_bytes == 4 * 1024 * 1024
        assert s.default_lossy_quality == 80
        assert s.min_long_edge == 1024
        assert s.image_store_dir == ""


@pytest.mark.parametrize(
    "env, expected",
    [("production", True), ("development", False)],
    ids=["production", "development"],
)
def test_is_production(monkeypatch, env, expected):
    monkeypatch.setenv("ENV", env)
    assert AppSettings().is_production is expected


class TestAppSettings:
    def test_sub_configs_populated(self):
        s = AppSettings()
        for attr in ("kv", "jwt", "ai", "images", "logging", "sentry"):
            assert getattr(s, attr) is not None, f"sub-config '{attr}' is None"

    def test_explicit_sub_config_kept(self):
        jwt_settings = JWTSettings(jwt_secret="explicit")
        assert AppSettings(jwt=jwt_settings).jwt.jwt_secret == "explicit"

    def test_cors_origins_default(self):
        assert AppSettings().cors_origins == ["*"]

    def test_sub_configs_read_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        assert AppSettings().logging.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env, expected",
    [("production", "json"), ("development", "console")],
    ids=["production", "development"],
)
def test_log_format_follows_env(monkeypatch, env, expected):
    monkeypatch.setenv("ENV", env)
    assert AppSettings().logging.log_format == expected


def test_log_format_env_override(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("LOG_FORMAT", "console")
    assert AppSettings().logging.log_format == "console"


def test_explicit_logging_format_kept():
    s = AppSettings(env="production", logging=LoggingSettings(log_format="console"))
    assert s.logging.log_format == "console"
