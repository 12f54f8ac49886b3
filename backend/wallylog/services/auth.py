from __future__ import annotations

import logging

from wallylog.core import metrics, security
from wallylog.core.config import settings
from wallylog.core.errors import AuthError, TooManyAttemptsError
from wallylog.core.rate_limit import LoginAttemptLedger
from wallylog.services import captcha as captcha_service

logger = logging.getLogger(__name__)

LOCKED_MESSAGE = "너무 많은 로그인 시도가 있었습니다. 15분 후 다시 시도해주세요."
BAD_PASSWORD_MESSAGE = "잘못된 비밀번호입니다."

login_ledger = LoginAttemptLedger(settings.login_max_attempts, settings.login_window_seconds)


def ensure_not_locked(client: str, ledger: LoginAttemptLedger = login_ledger) -> None:
    if not ledger.check(client):
        metrics.record_login_locked()
        logger.warning("login_locked", extra={"client": client})
        raise TooManyAttemptsError(LOCKED_MESSAGE, retry_after=ledger.retry_after(client))


async def authenticate_admin(
    password: str | None,
    captcha_token: str | None,
    *,
    client: str,
    ledger: LoginAttemptLedger = login_ledger,
) -> str:
    """
    Run the admin login flow and return a signed session token.

    Order matters: the lockout check runs first so a locked client never
    reaches the captcha or password checks. A captcha failure is not
    recorded as an attempt; a password check is, whatever its outcome.
    """
    ensure_not_locked(client, ledger)
    await captcha_service.verify(captcha_token, remote_ip=client)

    if security.verify_password(password or "", settings.admin_password_hash):
        ledger.record(client, success=True)
        metrics.record_login_success()
        logger.info("login_succeeded", extra={"client": client})
        return security.create_session_token()

    ledger.record(client, success=False)
    metrics.record_login_failure()
    raise AuthError(BAD_PASSWORD_MESSAGE)
