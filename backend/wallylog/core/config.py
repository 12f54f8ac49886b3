from functools import lru_cache
from typing import Iterable

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from wallylog.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "WallyLog API"
    app_version: str = "0.1.0"
    environment: str = "local"
    log_json: bool = False

    cors_origins: list[str] = ["http://localhost:3000"]
    cors_allow_credentials: bool = True
    secure_cookies: bool = False

    # Issue store (GitHub)
    github_token: str | None = None
    github_repository: str | None = None
    github_api_url: str = "https://api.github.com"
    github_issue_creator: str | None = None
    github_timeout_seconds: float = 15.0
    pending_label: str = "pending"
    approved_label: str = "approved"

    # SMTP transport
    smtp_host: str | None = None
    smtp_port: int | None = None
    smtp_username: str | None = Field(default=None, validation_alias=AliasChoices("smtp_username", "smtp_user"))
    smtp_password: str | None = Field(default=None, validation_alias=AliasChoices("smtp_password", "smtp_pass"))
    smtp_from: str | None = None
    smtp_from_name: str = "WallyLog"
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 10.0

    # Dispatch job
    send_interval_hours: float = 24.0
    content_api_base_url: str = "http://localhost:8000/api/v1"
    content_timeout_seconds: float = 20.0
    dispatch_scheduler_enabled: bool = False
    dispatch_poll_interval_seconds: int = 3600

    # Admin auth
    secret_key: str = "dev-secret-key"
    jwt_algorithm: str = "HS256"
    session_token_exp_hours: int = 24
    session_cookie_name: str = "auth-token"
    admin_password_hash: str | None = None
    login_max_attempts: int = 5
    login_window_seconds: int = 15 * 60
    recaptcha_enabled: bool = True
    recaptcha_secret_key: str | None = None
    recaptcha_verify_url: str = "https://www.google.com/recaptcha/api/siteverify"
    recaptcha_min_score: float = 0.5

    # AI content feeds
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    ai_models: list[str] = [
        "google/gemini-2.0-flash-exp:free",
        "meta-llama/llama-3.3-70b-instruct:free",
        "deepseek/deepseek-chat-v3-0324:free",
    ]
    ai_timeout_seconds: float = 60.0
    daily_api_token: str | None = None
    baby_growth_api_token: str | None = None
    content_dir: str = "content"

    sentry_dsn: str | None = None
    sentry_traces_sample_rate: float = 0.0


DISPATCH_REQUIRED_SETTINGS = (
    "github_token",
    "github_repository",
    "smtp_host",
    "smtp_port",
    "smtp_username",
    "smtp_password",
    "smtp_from",
)


def require_settings(config: Settings, names: Iterable[str]) -> None:
    missing = [name for name in names if getattr(config, name, None) in (None, "")]
    if missing:
        raise ConfigurationError(", ".join(name.upper() for name in missing) + " missing")


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
