"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Every external collaborator is optional: without REDIS_URI the KV port falls
back to an in-process store, without Cloudflare credentials the alt-text
endpoint answers 503, and without IMAGE_STORE_DIR optimised images are
returned but not persisted.
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BACKUP_PATTERNS = [
    r"^dashboard:demo:items$",
    r"^redirect:.*$",
    r"^metrics:.*$",
    r"^auth:.*$",
    r"^routeros:.*$",
]


class KVSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Without Redis the KV namespace lives in process memory
    redis_uri: Optional[str] = None

    # Keys included in a KV export unless ``all`` is requested
    kv_backup_patterns: list[str] = DEFAULT_BACKUP_PATTERNS


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # HS256 shared secret used to sign and verify API tokens
    jwt_secret: str = ""
    jwt_leeway_seconds: int = 0


class AISettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    cloudflare_account_id: str = ""
    cloudflare_api_token: str = ""
    ai_model: str = "@cf/llava-hf/llava-1.5-7b-hf"
    ai_timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.cloudflare_account_id and self.cloudflare_api_token)


class ImageSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # 4 MiB: accepted input size and the alt-text optimisation target
    alt_target_bytes: int = 4 * 1024 * 1024
    max_input_bytes: int = 4 * 1024 * 1024
    default_lossy_quality: int = 80
    min_long_edge: int = 1024
    fetch_timeout_seconds: float = 10.0

    # Local persistence for optimised images; disabled when empty
    image_store_dir: str = ""
    image_public_base_url: str = ""


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    # "json" or "console"; unset means json in production, console elsewhere
    log_format: Optional[str] = None

    # Sampling rates (0.0–1.0)
    sample_rate_redirect: float = 0.05
    sample_rate_metrics: float = 0.01


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_name: str = "dave.io api"

    # CORS: all origins by default
    cors_origins: list[str] = ["*"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    kv: Optional[KVSettings] = None
    jwt: Optional[JWTSettings] = None
    ai: Optional[AISettings] = None
    images: Optional[ImageSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.kv is None:
            self.kv = KVSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.ai is None:
            self.ai = AISettings()
        if self.images is None:
            self.images = ImageSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.logging.log_format is None:
            self.logging.log_format = "json" if self.is_production else "console"
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
