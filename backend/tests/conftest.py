import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import pytest

# Keep pytest output high-signal by disabling outbound Sentry capture in tests.
os.environ["SENTRY_DSN"] = ""

from fastapi.testclient import TestClient

from wallylog.api.v1.subscribe import get_record_store
from wallylog.core import metrics
from wallylog.core.errors import UpstreamError
from wallylog.main import app
from wallylog.services import auth as auth_service
from wallylog.services.email import SendResult
from wallylog.services.issue_store import Comment, Issue


NOW = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def subscriber_body(email: str = "reader@example.com", items: str = "english-pattern, it-news") -> str:
    return (
        "### 새 구독 신청\n\n"
        f"- 이메일: {email}\n"
        f"- 구독 항목: {items}\n"
        "- 라벨: approved\n"
        "- 신청시각: 2024-04-30T10:00:00+00:00\n"
    )


class FakeRecordStore:
    """In-memory issue tracker; comments are stamped with ``now``."""

    def __init__(self, issues: Sequence[Issue] = (), *, now: datetime = NOW) -> None:
        self.issues: list[Issue] = list(issues)
        self.comments: dict[int, list[Comment]] = {}
        self.posted: list[tuple[int, str]] = []
        self.list_calls: list[dict[str, Any]] = []
        self.now = now
        self.fail_listing = False
        self.fail_create = False
        self.fail_comment_for: set[int] = set()
        self.fail_next_comments = 0

    def add_comment(self, issue_number: int, body: str, *, hours_ago: float) -> Comment:
        comments = self.comments.setdefault(issue_number, [])
        comment = Comment(id=len(comments) + 1, body=body, created_at=self.now - timedelta(hours=hours_ago))
        comments.append(comment)
        return comment

    async def list_issues(
        self,
        *,
        state: str = "open",
        labels: Sequence[str] | None = None,
        creator: str | None = None,
    ) -> list[Issue]:
        self.list_calls.append({"state": state, "labels": list(labels or []), "creator": creator})
        if self.fail_listing:
            raise UpstreamError("list issues failed: 503 unavailable", status=503)
        return [issue for issue in self.issues if all(label in issue.labels for label in labels or [])]

    async def list_comments(self, issue_number: int) -> list[Comment]:
        return list(self.comments.get(issue_number, []))

    async def post_comment(self, issue_number: int, body: str) -> Comment:
        if issue_number in self.fail_comment_for:
            raise UpstreamError("comment failed: 500", status=500)
        if self.fail_next_comments:
            self.fail_next_comments -= 1
            raise UpstreamError("comment failed: 502", status=502)
        self.posted.append((issue_number, body))
        comments = self.comments.setdefault(issue_number, [])
        comment = Comment(id=len(comments) + 1, body=body, created_at=self.now)
        comments.append(comment)
        return comment

    async def create_issue(self, title: str, body: str, labels: Sequence[str]) -> Issue:
        if self.fail_create:
            raise UpstreamError("create issue failed: 500", status=500)
        issue = Issue(number=len(self.issues) + 1, title=title, body=body, labels=tuple(labels), created_at=self.now)
        self.issues.append(issue)
        return issue


class FakeContentClient:
    def __init__(self, patterns: dict[str, Any] | None = None, news: dict[str, Any] | None = None) -> None:
        self.patterns = patterns if patterns is not None else {
            "day": 3,
            "patterns": [
                {
                    "pattern": "I'm about to ...",
                    "meaning": "막 ~하려던 참이야",
                    "examples": [{"sentence": "I'm about to leave.", "translation": "막 나가려던 참이야."}],
                }
            ],
        }
        self.news = news if news is not None else {
            "date": "20240501",
            "sources": [
                {
                    "title": {"original": "Chips get faster", "ko": "칩이 더 빨라진다"},
                    "summary": {"original": "A summary.", "ko": "요약입니다."},
                    "url": "https://example.com/chips",
                }
            ],
        }
        self.calls: list[str] = []
        self.error: Exception | None = None

    async def fetch_english_patterns(self) -> dict[str, Any]:
        self.calls.append("english-pattern")
        if self.error:
            raise self.error
        return self.patterns

    async def fetch_it_news(self) -> dict[str, Any]:
        self.calls.append("it-news")
        if self.error:
            raise self.error
        return self.news


class RecordingSender:
    def __init__(self, result: SendResult | None = None, *, per_address: dict[str, SendResult] | None = None) -> None:
        self.result = result or SendResult(ok=True, status=250)
        self.per_address = per_address or {}
        self.sent: list[dict[str, Any]] = []

    async def __call__(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> SendResult:
        self.sent.append({"to": to_email, "subject": subject, "text": text_body, "html": html_body})
        return self.per_address.get(to_email, self.result)


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_process_state() -> Generator[None, None, None]:
    auth_service.login_ledger.reset()
    metrics.reset()
    yield
    auth_service.login_ledger.reset()
    metrics.reset()


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def content() -> FakeContentClient:
    return FakeContentClient()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def client(store: FakeRecordStore) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_record_store] = lambda: store
    test_client = TestClient(app)
    yield test_client
    test_client.close()
    app.dependency_overrides.clear()
