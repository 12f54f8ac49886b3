from __future__ import annotations

import logging
from typing import Any

import httpx

from wallylog.core.config import settings
from wallylog.core.errors import AuthError

logger = logging.getLogger(__name__)

CAPTCHA_FAILED_MESSAGE = "reCAPTCHA 검증에 실패했습니다"


def _recaptcha_payload(secret: str, token: str, remote_ip: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"secret": secret, "response": token}
    if remote_ip and remote_ip != "unknown":
        payload["remoteip"] = remote_ip
    return payload


async def _recaptcha_verify(payload: dict[str, Any], transport: httpx.AsyncBaseTransport | None) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=5, transport=transport) as client:
            resp = await client.post(settings.recaptcha_verify_url, data=payload)
    except httpx.HTTPError as exc:
        logger.warning("recaptcha_unreachable", extra={"error": str(exc)})
        return {}
    if resp.status_code != 200 or not resp.content:
        logger.warning("recaptcha_bad_status", extra={"status_code": resp.status_code})
        return {}
    parsed = resp.json()
    return parsed if isinstance(parsed, dict) else {}


def is_human(data: dict[str, Any]) -> bool:
    """reCAPTCHA v3: score close to 1.0 means human, close to 0.0 means bot."""
    if not bool(data.get("success")):
        return False
    score = data.get("score")
    if score is None:
        return True
    try:
        return float(score) >= settings.recaptcha_min_score
    except (TypeError, ValueError):
        return False


async def verify(
    token: str | None,
    *,
    remote_ip: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Raise AuthError unless the bot-score check passes. No-op when disabled."""
    if not settings.recaptcha_enabled:
        return
    secret = (settings.recaptcha_secret_key or "").strip()
    normalized = (token or "").strip()
    if not secret or not normalized:
        raise AuthError(CAPTCHA_FAILED_MESSAGE)
    data = await _recaptcha_verify(_recaptcha_payload(secret, normalized, remote_ip), transport)
    if not is_human(data):
        raise AuthError(CAPTCHA_FAILED_MESSAGE)
