import secrets
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "ESSPortal"
    upstream_base_url: str = "https://api.rccmaldives.com/ess"
    upstream_timeout_seconds: float = 20.0
    upstream_token_mode: Literal["upstream", "local"] = "upstream"
    session_secret: str = ""
    session_cookie_name: str = "ess_session"
    session_cookie_secure: bool = False
    cors_allow_origins: str = "http://127.0.0.1:5000,http://localhost:5000"
    working_days_per_month: int = 22
    login_max_attempts: int = 10
    login_attempt_window_minutes: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_cors_origins() -> list[str]:
    raw = get_settings().cors_allow_origins
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_upstream_base_url() -> str:
    return get_settings().upstream_base_url.rstrip("/")


@lru_cache
def _generated_session_secret() -> str:
    return secrets.token_urlsafe(32)


def get_session_secret() -> str:
    configured = (get_settings().session_secret or "").strip()
    if configured:
        return configured
    # Sessions live in process memory, so a per-process key loses nothing on restart.
    return _generated_session_secret()
