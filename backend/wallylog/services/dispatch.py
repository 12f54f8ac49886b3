"""
Subscription dispatch job.

Lists approved subscription issues and mails each subscriber at most once per
``interval_hours``. The issue's comment thread is both the audit trail and
the job's state: a successful send posts a comment carrying
:data:`DISPATCH_MARKER`, and the next run skips the issue until that comment
is older than the interval.

Issues are processed one at a time. A failure while handling one issue is
logged, reported on that issue and counted; it never stops the run. Only a
failure to list the approved issues aborts the run. Once a mail has been
accepted the issue counts as sent, even when recording the dispatch comment
fails.

Concurrent runs are not safe against each other (both could pass the
interval check before either comments); callers must serialize them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from wallylog.core import metrics
from wallylog.core.config import Settings, settings
from wallylog.core.errors import ParseError
from wallylog.services import email as email_service
from wallylog.services.content_client import ContentClient
from wallylog.services.email import SendResult
from wallylog.services.issue_format import SubscriberMeta, parse_subscriber
from wallylog.services.issue_store import Comment, Issue, RecordStore

logger = logging.getLogger(__name__)

DISPATCH_MARKER = "📤"
FAILURE_MARKER = "⚠️"

ITEM_ENGLISH_PATTERN = "english-pattern"
ITEM_IT_NEWS = "it-news"

SUBJECT = "WallyLog — 최근 업데이트 받기"
DIGEST_TEMPLATE = "subscription_digest.txt.j2"

REASON_LIMIT = 100

Sender = Callable[[str, str, str, str | None], Awaitable[SendResult]]


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


@dataclass
class DispatchSummary:
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def iso_now(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def success_comment(now: datetime, items: Sequence[str]) -> str:
    return f"{DISPATCH_MARKER} {iso_now(now)} 발송 완료 — 항목: {', '.join(items)}"


def send_failure_comment(now: datetime, result: SendResult) -> str:
    return f"{FAILURE_MARKER} {iso_now(now)} 발송 실패 — status: {result.status}; resp: {str(result.body)[:REASON_LIMIT]}"


def error_comment(now: datetime, exc: BaseException) -> str:
    return f"{FAILURE_MARKER} {iso_now(now)} 발송 실패 — error: {str(exc)[:REASON_LIMIT]}"


def last_dispatch_at(comments: Sequence[Comment]) -> datetime | None:
    """Creation time of the most recent comment carrying the dispatch marker."""
    # Newest first by timestamp rather than trusting the store's list order.
    for comment in sorted(comments, key=lambda c: c.created_at, reverse=True):
        if DISPATCH_MARKER in (comment.body or ""):
            return comment.created_at
    return None


def hours_since(moment: datetime, now: datetime) -> float:
    return (now - moment).total_seconds() / 3600


def pattern_cards(document: dict[str, Any]) -> list[dict[str, Any]]:
    cards = []
    for item in document.get("patterns") or []:
        if not isinstance(item, dict) or not item.get("pattern"):
            continue
        examples = item.get("examples") or []
        example = examples[0] if examples and isinstance(examples[0], dict) else None
        cards.append(
            {
                "pattern": item["pattern"],
                "meaning": item.get("meaning", ""),
                "example": (
                    {"sentence": example.get("sentence", ""), "translation": example.get("translation", "")}
                    if example
                    else None
                ),
            }
        )
    return cards


def _localized(value: Any, lang: str = "ko") -> str:
    if isinstance(value, dict):
        return str(value.get(lang) or value.get("original") or "")
    return str(value or "")


def news_cards(document: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {
            "title": _localized(source.get("title")),
            "summary": _localized(source.get("summary")),
            "url": source.get("url") or "",
        }
        for source in document.get("sources") or []
        if isinstance(source, dict)
    ]


async def render_content(items: Sequence[str], content: ContentClient) -> RenderedEmail:
    """
    Build the digest for ``items``.

    Feeds are fetched only for the items that need them; a failed fetch
    raises UpstreamError so that no partial email goes out.
    """
    patterns: list[dict[str, Any]] = []
    news: list[dict[str, Any]] = []
    if ITEM_ENGLISH_PATTERN in items:
        patterns = pattern_cards(await content.fetch_english_patterns())
    if ITEM_IT_NEWS in items:
        news = news_cards(await content.fetch_it_news())

    text, html = email_service.render_template(
        DIGEST_TEMPLATE, {"subject": SUBJECT, "items": list(items), "patterns": patterns, "news": news}
    )
    return RenderedEmail(subject=SUBJECT, text=text, html=html)


class DispatchJob:
    def __init__(
        self,
        store: RecordStore,
        content: ContentClient,
        *,
        sender: Sender | None = None,
        interval_hours: float | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] | None = None,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.content = content
        self.sender = sender or email_service.send_email
        self.interval_hours = config.send_interval_hours if interval_hours is None else interval_hours
        self.label = config.approved_label
        self.creator = config.github_issue_creator
        self.dry_run = dry_run
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self) -> DispatchSummary:
        logger.info("Starting send-subscriptions job")
        issues = await self.store.list_issues(state="open", labels=[self.label], creator=self.creator)
        logger.info("Found %d open issues with label %s", len(issues), self.label)

        summary = DispatchSummary()
        for issue in issues:
            try:
                outcome = await self.process_issue(issue)
            except Exception as exc:
                logger.exception("issue loop error", extra={"issue": issue.number})
                await self._report_error(issue, exc)
                outcome = "failed"
            setattr(summary, outcome, getattr(summary, outcome) + 1)

        metrics.record_dispatch_run(summary.sent, summary.skipped, summary.failed)
        logger.info("done. sent=%d skipped=%d failed=%d", summary.sent, summary.skipped, summary.failed)
        return summary

    async def process_issue(self, issue: Issue) -> str:
        try:
            meta = parse_subscriber(issue.body)
        except ParseError as exc:
            logger.warning("#%d - email not found in issue body, skipping", issue.number)
            if not self.dry_run:
                await self.store.post_comment(issue.number, exc.message)
            return "skipped"

        if self.interval_hours > 0 and await self._sent_recently(issue):
            logger.info("#%d - skipped (last send within %sh)", issue.number, self.interval_hours)
            return "skipped"

        rendered = await render_content(meta.items, self.content)
        if self.dry_run:
            logger.info("#%d - dry run, would send %r", issue.number, rendered.subject)
            return "skipped"
        return await self._deliver(issue, meta, rendered)

    async def _sent_recently(self, issue: Issue) -> bool:
        last = last_dispatch_at(await self.store.list_comments(issue.number))
        return last is not None and hours_since(last, self._clock()) < self.interval_hours

    async def _deliver(self, issue: Issue, meta: SubscriberMeta, rendered: RenderedEmail) -> str:
        result = await self.sender(meta.email, rendered.subject, rendered.text, rendered.html)
        now = self._clock()
        if result.ok:
            logger.info("#%d - sent", issue.number, extra={"items": meta.items})
            try:
                await self.store.post_comment(issue.number, success_comment(now, meta.items))
            except Exception:
                # The mail is already out; the next run may resend it.
                logger.error("#%d - sent but could not record dispatch comment", issue.number, exc_info=True)
            return "sent"

        await self.store.post_comment(issue.number, send_failure_comment(now, result))
        logger.warning("#%d - failed send", issue.number, extra={"status": str(result.status)})
        return "failed"

    async def _report_error(self, issue: Issue, exc: BaseException) -> None:
        if self.dry_run:
            return
        try:
            await self.store.post_comment(issue.number, error_comment(self._clock(), exc))
        except Exception:
            logger.warning("#%d - could not post failure comment", issue.number, exc_info=True)
