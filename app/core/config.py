from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # Session tokens
    jwt_secret: str = Field(default="changeme", alias="JWT_SECRET")
    jwt_access_expires_seconds: int = Field(default=3600, alias="JWT_ACCESS_EXPIRES_SECONDS")
    jwt_refresh_expires_days: int = Field(default=30, alias="JWT_REFRESH_EXPIRES_DAYS")
    access_cookie_max_age: int = Field(default=15 * 24 * 3600, alias="ACCESS_COOKIE_MAX_AGE")
    admin_session_max_age: int = Field(default=24 * 3600, alias="ADMIN_SESSION_MAX_AGE")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="batchmirror", alias="MONGODB_DB_NAME")

    # Remote education platform
    platform_base_url: str = Field(default="https://api.penpencil.co", alias="PW_API")
    platform_client_id: str = Field(default="system-admin", alias="PLATFORM_CLIENT_ID")
    platform_client_secret: str = Field(default="", alias="PLATFORM_CLIENT_SECRET")
    platform_organization_id: str = Field(default="5eb393ee95fab7468a79d189", alias="PLATFORM_ORGANIZATION_ID")
    platform_timeout_seconds: float = Field(default=5.0, alias="PLATFORM_TIMEOUT_SECONDS")

    # Batch sync
    batch_sync_limit: int = Field(default=10, alias="BATCH_SYNC_LIMIT")
    batch_sync_ttl_seconds: int = Field(default=6 * 3600, alias="BATCH_SYNC_TTL_SECONDS")

    # Users
    default_country_code: str = Field(default="+91", alias="DEFAULT_COUNTRY_CODE")
    default_photo_url: str = Field(
        default="https://cdn-icons-png.flaticon.com/512/3607/3607444.png",
        alias="DEFAULT_PHOTO_URL",
    )
    direct_login_open: bool = Field(default=False, alias="DIRECT_LOGIN_OPEN")

    # Telegram audit channel
    telegram_bot_token: str = Field(default="", alias="BOT_TOKEN")
    telegram_channel_id: str = Field(default="", alias="LOG_CHANNEL_ID")
    notify_timeout_seconds: float = Field(default=3.0, alias="NOTIFY_TIMEOUT_SECONDS")

    # Admin
    admin_reset_key: str = Field(default="", alias="ADMIN_RESET_KEY")
    server_config_ttl_seconds: int = Field(default=60, alias="SERVER_CONFIG_TTL_SECONDS")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def refresh_cookie_max_age(self) -> int:
        return self.jwt_refresh_expires_days * 24 * 3600


@lru_cache
def get_settings() -> Settings:
    return Settings()
