"""
Subscription issue body micro-format, version 1.

A body is a sequence of lines. A record line is an optional list bullet
(``-`` or ``*``) followed by ``key: value``::

    ### 새 구독 신청

    - 이메일: reader@example.com
    - 구독 항목: english-pattern, it-news
    - 라벨: pending
    - 신청시각: 2024-05-01T09:30:00+00:00

Rules:

* keys are matched case-insensitively, lines may appear in any order;
* the first occurrence of a key wins;
* lines that are not ``key: value`` and unknown keys are ignored;
* values are trimmed; the items value is split on ``,`` with empty entries
  dropped;
* ``템플릿`` is a legacy key kept for older issues and defaults to ``simple``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from wallylog.core.errors import ParseError

FORMAT_VERSION = 1

KEY_EMAIL = "이메일"
KEY_ITEMS = "구독 항목"
KEY_TEMPLATE = "템플릿"
KEY_LABEL = "라벨"
KEY_REQUESTED_AT = "신청시각"

DEFAULT_TEMPLATE = "simple"

_LINE_RE = re.compile(r"^\s*(?:[-*]\s*)?(?P<key>[^:\n]+?)\s*:\s*(?P<value>.+?)\s*$")

PARSE_FAILURE_MESSAGE = (
    "⚠️ 발송 실패: 이메일을 분해할 수 없습니다. "
    "(issue body에 '이메일: your@example.com' 형식으로 있어야 합니다.)"
)


@dataclass(frozen=True)
class SubscriberMeta:
    email: str
    items: list[str] = field(default_factory=list)
    template: str = DEFAULT_TEMPLATE


def parse_fields(body: str | None) -> dict[str, str]:
    """Return the ``key: value`` lines of ``body`` keyed by lower-cased key."""
    fields: dict[str, str] = {}
    for line in (body or "").splitlines():
        match = _LINE_RE.match(line)
        if not match:
            continue
        key = match.group("key").strip().lower()
        value = match.group("value").strip()
        if value:
            fields.setdefault(key, value)
    return fields


def split_items(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def parse_subscriber(body: str | None) -> SubscriberMeta:
    fields = parse_fields(body)
    email = fields.get(KEY_EMAIL.lower(), "")
    if not email:
        raise ParseError(PARSE_FAILURE_MESSAGE)
    return SubscriberMeta(
        email=email,
        items=split_items(fields.get(KEY_ITEMS.lower())),
        template=fields.get(KEY_TEMPLATE.lower()) or DEFAULT_TEMPLATE,
    )


def build_issue_title(email: str) -> str:
    return f"구독 신청 — {email}"


def build_issue_body(email: str, items: Sequence[str], label: str, requested_at: datetime) -> str:
    return (
        "### 새 구독 신청\n\n"
        f"- {KEY_EMAIL}: {email}\n"
        f"- {KEY_ITEMS}: {', '.join(items)}\n"
        f"- {KEY_LABEL}: {label}\n"
        f"- {KEY_REQUESTED_AT}: {requested_at.isoformat()}\n\n"
        "(자동 생성된 요청 — 관리자가 승인하면 라벨을 'approved'로 변경해 주세요. "
        "발송 작업은 'approved' 라벨을 기준으로 발송합니다.)"
    )
