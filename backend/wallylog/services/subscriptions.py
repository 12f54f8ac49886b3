from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from wallylog.core import metrics
from wallylog.core.config import Settings, settings
from wallylog.core.errors import ConflictError, ValidationError
from wallylog.services.issue_format import build_issue_body, build_issue_title
from wallylog.services.issue_store import Issue, RecordStore

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

INVALID_EMAIL_MESSAGE = "부적절한 이메일형식"
EMPTY_ITEMS_MESSAGE = "구독할 항목이 선택되지 않았습니다"
DUPLICATE_MESSAGE = "이미 동일 이메일로 등록된 요청이 있습니다."


def validate_request(email: Any, items: Any) -> tuple[str, list[str]]:
    normalized = str(email or "").strip()
    if not normalized or not EMAIL_RE.fullmatch(normalized):
        raise ValidationError(INVALID_EMAIL_MESSAGE)
    if not isinstance(items, list) or not items:
        raise ValidationError(EMPTY_ITEMS_MESSAGE)
    return normalized, [str(item).strip() for item in items]


def has_open_request(issues: list[Issue], email: str) -> bool:
    needle = email.lower()
    return any(needle in f"{issue.title}\n{issue.body}".lower() for issue in issues)


async def request_subscription(
    store: RecordStore,
    email: Any,
    items: Any,
    *,
    config: Settings = settings,
    now: datetime | None = None,
) -> Issue:
    """
    Record a new subscription request as a ``pending`` issue.

    Raises ValidationError for a malformed email or empty item list (before
    touching the store) and ConflictError when an open issue already
    mentions the email.
    """
    email, items = validate_request(email, items)

    open_issues = await store.list_issues(state="open", creator=config.github_issue_creator)
    if has_open_request(open_issues, email):
        raise ConflictError(DUPLICATE_MESSAGE)

    requested_at = now or datetime.now(timezone.utc)
    label = config.pending_label
    issue = await store.create_issue(
        build_issue_title(email),
        build_issue_body(email, items, label, requested_at),
        [label],
    )
    metrics.record_subscription_requested()
    logger.info("subscription_requested", extra={"issue": issue.number, "items": items})
    return issue
