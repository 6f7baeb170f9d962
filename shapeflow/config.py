from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Uses pydantic for validation and type safety.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Async driver URL. Postgres works via postgresql+asyncpg://
    database_url: str = "sqlite+aiosqlite:///./shapeflow.db"

    # Absolute session lifetime in hours (30 days)
    session_expire_hours: int = 720

    # Sessions with less lifetime left than this are extended on the next
    # request that can write a cookie. Defaults to half the lifetime.
    session_refresh_threshold_hours: Optional[int] = None

    cookie_name: str = "auth_session"
    cookie_domain: Optional[str] = None

    # HTTP-only prevents JavaScript access
    cookie_httponly: bool = True

    # Lax allows cookie on normal navigation but blocks on CSRF-prone requests
    cookie_samesite: str = "lax"

    # Defaults for the bootstrap CLI
    admin_email: str = "admin@shapeflow.com"
    admin_password: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def cookie_secure(self) -> bool:
        # secure=True enforces HTTPS only, relaxed for local development
        return not self.is_development

    @property
    def refresh_threshold_hours(self) -> int:
        if self.session_refresh_threshold_hours is not None:
            return self.session_refresh_threshold_hours
        return self.session_expire_hours // 2


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()
