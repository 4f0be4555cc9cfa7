from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, DotEnvSettingsSource, EnvSettingsSource, SettingsConfigDict


_COMMA_SEPARATED_FIELDS = {"allow_origins", "superadmin_ids", "superadmin_emails"}


class _FallbackEnvSettingsSource(EnvSettingsSource):
    """Allow list settings to be comma-separated instead of strict JSON."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name in _COMMA_SEPARATED_FIELDS:
                return value
            raise


class _FallbackDotEnvSettingsSource(DotEnvSettingsSource):
    """Allow list settings to be comma-separated instead of strict JSON."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name in _COMMA_SEPARATED_FIELDS:
                return value
            raise


def _split_csv(value: str | List[str] | None) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "PartnerHub API"
    project_version: str = "1.0.0"
    environment: str = Field(
        default="development",
        description="Deployment environment name",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    git_sha: str | None = Field(default=None, description="Git SHA for /version")
    build_version: str | None = Field(default=None, description="Build identifier")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database
    database_url: str = Field(
        default="postgresql+psycopg2://postgres@localhost:5432/partnerhub",
        description="SQLAlchemy database URL",
    )
    db_pool_size: int = Field(default=5, description="Base DB connection pool size")
    db_max_overflow: int = Field(default=10, description="Additional DB connections beyond pool size")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a DB connection")
    db_pool_recycle: int = Field(default=1800, description="Recycle DB connections after N seconds")

    # Auth / JWT
    jwt_secret: str = Field(default="change_me", description="JWT signing secret")
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Access token expiry in minutes")

    # Identity resolution
    superadmin_ids: List[str] = Field(
        default_factory=list,
        description="Principal ids always resolved as superadmin",
        validation_alias=AliasChoices("SUPERADMIN_IDS", "SUPERADMIN_UIDS"),
    )
    superadmin_emails: List[str] = Field(
        default_factory=list,
        description="Emails (case-insensitive) always resolved as superadmin",
        validation_alias=AliasChoices("SUPERADMIN_EMAILS"),
    )
    identity_cache_ttl_seconds: int = Field(default=300, description="TTL for cached resolved identities")
    identity_lookup_timeout_seconds: float = Field(
        default=3.0,
        description="Timeout for the membership lookup during identity resolution",
    )

    # CORS
    allow_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    )

    # Storage
    uploads_dir: str = Field(
        default="./uploads",
        description="Directory for uploaded submission files",
        validation_alias=AliasChoices("UPLOAD_DIR", "UPLOADS_DIR"),
    )
    max_upload_mb: int = Field(default=50, description="Max accepted upload size in MB")

    # Realtime
    realtime_keepalive_seconds: float = Field(
        default=15.0,
        description="Seconds between SSE keepalive comments",
    )

    # Email delivery
    app_base_url: str = Field(
        default="http://localhost:5173",
        description="Base URL for portal links in emails",
        validation_alias=AliasChoices("APP_BASE_URL", "FRONTEND_BASE_URL"),
    )
    email_provider: str = Field(
        default="disabled",
        description="Email provider: resend, postmark, smtp, disabled",
        validation_alias=AliasChoices("EMAIL_PROVIDER"),
    )
    email_api_key: str | None = Field(
        default=None,
        description="API key for Resend/Postmark",
        validation_alias=AliasChoices("EMAIL_API_KEY"),
    )
    email_from: str | None = Field(
        default=None,
        description="From address for outbound email",
        validation_alias=AliasChoices("EMAIL_FROM"),
    )
    email_max_attempts: int = Field(default=3, description="Max delivery attempts per email")
    email_retry_minutes: int = Field(default=5, description="Minutes between delivery retries")
    email_http_timeout_seconds: float = Field(default=15.0, description="Timeout for email provider calls")

    smtp_host: str | None = Field(default=None, description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_username: str | None = Field(default=None, description="SMTP username")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Use TLS for SMTP")

    @field_validator("allow_origins", mode="before")
    @classmethod
    def parse_allow_origins(cls, value: str | List[str]) -> List[str]:
        origins = _split_csv(value)
        if origins:
            return origins
        return [
            "http://localhost",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]

    @field_validator("superadmin_ids", mode="before")
    @classmethod
    def parse_superadmin_ids(cls, value: str | List[str] | None) -> List[str]:
        return _split_csv(value)

    @field_validator("superadmin_emails", mode="before")
    @classmethod
    def parse_superadmin_emails(cls, value: str | List[str] | None) -> List[str]:
        return [email.lower() for email in _split_csv(value)]

    def ensure_uploads_dir(self) -> Path:
        uploads_path = Path(self.uploads_dir).expanduser().resolve()
        uploads_path.mkdir(parents=True, exist_ok=True)
        return uploads_path

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            _FallbackEnvSettingsSource(settings_cls),
            _FallbackDotEnvSettingsSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
