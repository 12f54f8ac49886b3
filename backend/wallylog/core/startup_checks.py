from __future__ import annotations

import logging
from typing import Callable

from wallylog.core.config import Settings, settings

logger = logging.getLogger(__name__)

DEV_SECRET_KEY = "dev-secret-key"
MIN_SECRET_LENGTH = 32

PRODUCTION_ENVIRONMENTS = {"prod", "production"}


def _blank(value: str | None) -> bool:
    return not (value or "").strip()


def _weak_secret(config: Settings) -> bool:
    secret = (config.secret_key or "").strip()
    return secret == DEV_SECRET_KEY or len(secret) < MIN_SECRET_LENGTH


# (failing condition, message) pairs evaluated against the live settings.
PRODUCTION_CHECKS: list[tuple[Callable[[Settings], bool], str]] = [
    (_weak_secret, "SECRET_KEY must be set to a strong random value (not the dev default)."),
    (lambda c: _blank(c.admin_password_hash), "ADMIN_PASSWORD_HASH must be configured in production."),
    (lambda c: not c.secure_cookies, "SECURE_COOKIES must be enabled in production."),
    (
        lambda c: c.recaptcha_enabled and _blank(c.recaptcha_secret_key),
        "RECAPTCHA_SECRET_KEY must be set when RECAPTCHA_ENABLED=1.",
    ),
    (
        lambda c: _blank(c.github_token) or _blank(c.github_repository),
        "GITHUB_TOKEN and GITHUB_REPOSITORY must be set for subscription intake.",
    ),
]


def is_production(config: Settings = settings) -> bool:
    return (config.environment or "").strip().lower() in PRODUCTION_ENVIRONMENTS


def production_problems(config: Settings = settings) -> list[str]:
    return [message for failing, message in PRODUCTION_CHECKS if failing(config)]


def validate_production_settings(config: Settings = settings) -> None:
    """Refuse to start a production deployment on development defaults."""
    if not is_production(config):
        return
    problems = production_problems(config)
    if problems:
        raise RuntimeError("Production configuration checks failed:\n- " + "\n- ".join(problems))
    logger.info("production_settings_ok")
