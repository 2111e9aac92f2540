from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: Any, name: str) -> list[str]:
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Iterable):
        return [str(item).strip() for item in value if str(item).strip()]
    raise TypeError(f"{name} must be a comma separated string or list")


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "TimeFlow"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent)
    TEMPLATES_DIR: Path | None = None
    STATIC_DIR: Path | None = None
    TZ: str = "Asia/Kolkata"

    APP_SECRET: str = "dev-insecure-secret-change-me"
    SESSION_COOKIE_NAME: str = "tf_session"
    SESSION_MAX_AGE: int = 60 * 60 * 24 * 30
    ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    DB_URL: str = Field(
        default="sqlite:///data/timeflow.db",
        validation_alias=AliasChoices("DB_URL", "DATABASE_URL"),
    )

    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    SUPABASE_JWT_SECRET: str = ""
    SUPABASE_JWT_AUDIENCE: str = "authenticated"
    HTTP_TIMEOUT: float = 10.0

    PUBLIC_BASE_URL: str = "http://localhost:8089"
    OAUTH_PROVIDER: str = "azure"
    OAUTH_SCOPES: str = "email"
    AZURE_TENANT_URL: str = ""

    ATTENDANCE_TZ: str = "Asia/Kolkata"
    ATTENDANCE_RESET_HOUR: int = 6

    SCREENSHOTS_BUCKET: str = "screenshots"
    AVATARS_BUCKET: str = "avatars"
    DOWNLOAD_BUCKETS: list[str] = Field(
        default_factory=lambda: ["tracker-application", "downloads", "desktop-apps", "apps", "releases"]
    )
    AVATAR_MAX_BYTES: int = 5 * 1024 * 1024

    DEFAULT_TRACKER_VERSION: str = "1.6.0"

    HOST: str = "0.0.0.0"
    PORT: int = 8089
    LOG_LEVEL: str = "INFO"

    def _resolve_path(self, base: Path | None, fallback: Path) -> Path:
        return base if base is not None else fallback

    @property
    def templates_dir(self) -> Path:
        return self._resolve_path(self.TEMPLATES_DIR, self.BASE_DIR / "templates")

    @property
    def static_dir(self) -> Path:
        return self._resolve_path(self.STATIC_DIR, self.BASE_DIR / "static")

    @property
    def auth_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/auth/v1"

    @property
    def storage_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/storage/v1"

    @property
    def callback_redirect_base(self) -> str:
        return f"{self.PUBLIC_BASE_URL.rstrip('/')}/auth/callback"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        return _split_csv(value, "ALLOWED_ORIGINS")

    @field_validator("DOWNLOAD_BUCKETS", mode="before")
    @classmethod
    def parse_download_buckets(cls, value: Any) -> list[str]:
        return _split_csv(value, "DOWNLOAD_BUCKETS")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if settings.DB_URL.startswith("sqlite:///"):
        db_path = settings.DB_URL.removeprefix("sqlite:///")
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    if settings.TEMPLATES_DIR is None:
        settings.TEMPLATES_DIR = settings.BASE_DIR / "templates"
    if settings.STATIC_DIR is None:
        settings.STATIC_DIR = settings.BASE_DIR / "static"
    return settings


settings = get_settings()
