from dataclasses import replace
from datetime import datetime, timezone

import pytest

from conftest import NOW, FakeContentClient, FakeRecordStore, RecordingSender, subscriber_body
from wallylog.core import metrics
from wallylog.core.errors import UpstreamError
from wallylog.services.dispatch import (
    DISPATCH_MARKER,
    FAILURE_MARKER,
    DispatchJob,
    DispatchSummary,
    iso_now,
    last_dispatch_at,
    news_cards,
    pattern_cards,
    render_content,
)
from wallylog.services.email import SendResult
from wallylog.services.issue_format import PARSE_FAILURE_MESSAGE
from wallylog.services.issue_store import Comment, Issue
from wallylog.services.subscriptions import request_subscription


def approved(number: int, body: str | None = None) -> Issue:
    return Issue(number=number, title=f"구독 신청 #{number}", body=body or subscriber_body(), labels=("approved",))


def make_job(store, content, sender, **kwargs) -> DispatchJob:
    kwargs.setdefault("interval_hours", 24)
    return DispatchJob(store, content, sender=sender, clock=lambda: NOW, **kwargs)


def test_iso_now_uses_millisecond_utc() -> None:
    assert iso_now(NOW) == "2024-05-01T09:30:00.000Z"


def test_last_dispatch_at_ignores_list_order_and_failure_comments() -> None:
    older = Comment(id=1, body=f"{DISPATCH_MARKER} old", created_at=datetime(2024, 4, 1, tzinfo=timezone.utc))
    newer = Comment(id=2, body=f"{DISPATCH_MARKER} new", created_at=datetime(2024, 4, 20, tzinfo=timezone.utc))
    failure = Comment(id=3, body=f"{FAILURE_MARKER} latest", created_at=datetime(2024, 4, 30, tzinfo=timezone.utc))

    assert last_dispatch_at([newer, failure, older]) == newer.created_at
    assert last_dispatch_at([failure]) is None
    assert last_dispatch_at([]) is None


@pytest.mark.anyio
async def test_sends_and_comments_with_dispatch_marker(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(approved(1))

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary(sent=1, skipped=0, failed=0)
    assert sender.sent[0]["to"] == "reader@example.com"
    assert sender.sent[0]["subject"] == "WallyLog — 최근 업데이트 받기"
    assert "I'm about to ..." in sender.sent[0]["text"]
    assert "칩이 더 빨라진다" in sender.sent[0]["html"]
    assert store.posted == [
        (1, f"{DISPATCH_MARKER} 2024-05-01T09:30:00.000Z 발송 완료 — 항목: english-pattern, it-news")
    ]


@pytest.mark.anyio
async def test_only_approved_issues_are_listed(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(Issue(number=1, title="pending", body=subscriber_body(), labels=("pending",)))

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary()
    assert store.list_calls[0]["labels"] == ["approved"]
    assert sender.sent == []


@pytest.mark.anyio
async def test_recent_dispatch_is_skipped_silently(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(approved(1))
    store.add_comment(1, f"{DISPATCH_MARKER} earlier send", hours_ago=1)

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary(sent=0, skipped=1, failed=0)
    assert sender.sent == []
    assert store.posted == []
    assert content.calls == []


@pytest.mark.anyio
async def test_dispatch_older_than_interval_sends_again(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(approved(1))
    store.add_comment(1, f"{DISPATCH_MARKER} earlier send", hours_ago=25)

    summary = await make_job(store, content, sender).run()

    assert summary.sent == 1


@pytest.mark.anyio
async def test_failure_comment_does_not_count_as_dispatch(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(approved(1))
    store.add_comment(1, f"{FAILURE_MARKER} failed an hour ago", hours_ago=1)

    summary = await make_job(store, content, sender).run()

    assert summary.sent == 1


@pytest.mark.anyio
async def test_zero_interval_disables_resend_guard(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(approved(1))
    store.add_comment(1, f"{DISPATCH_MARKER} earlier send", hours_ago=0.1)

    summary = await make_job(store, content, sender, interval_hours=0).run()

    assert summary.sent == 1


@pytest.mark.anyio
async def test_unparseable_body_gets_parse_comment_and_is_skipped(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(approved(1, body="구독하고 싶어요! 연락 주세요."))

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary(sent=0, skipped=1, failed=0)
    assert store.posted == [(1, PARSE_FAILURE_MESSAGE)]
    assert sender.sent == []


@pytest.mark.anyio
async def test_send_failure_posts_warning_with_status(
    store: FakeRecordStore, content: FakeContentClient
) -> None:
    sender = RecordingSender(SendResult(ok=False, status=550, body="mailbox unavailable"))
    store.issues.append(approved(1))

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary(sent=0, skipped=0, failed=1)
    assert len(store.posted) == 1
    comment = store.posted[0][1]
    assert comment.startswith(f"{FAILURE_MARKER} 2024-05-01T09:30:00.000Z 발송 실패")
    assert "status: 550" in comment
    assert "mailbox unavailable" in comment
    assert DISPATCH_MARKER not in comment


@pytest.mark.anyio
async def test_send_failure_does_not_arm_the_resend_guard(
    store: FakeRecordStore, content: FakeContentClient
) -> None:
    store.issues.append(approved(1))
    await make_job(store, content, RecordingSender(SendResult(ok=False, status=421, body="try later"))).run()

    retry = RecordingSender()
    summary = await make_job(store, content, retry).run()

    assert summary.sent == 1
    assert len(retry.sent) == 1


@pytest.mark.anyio
async def test_content_failure_fails_issue_without_sending(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    content.error = UpstreamError("영어 패턴을 가져오지 못했습니다: 500", status=500)
    store.issues.append(approved(1))

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary(sent=0, skipped=0, failed=1)
    assert sender.sent == []
    assert store.posted[0][1].startswith(FAILURE_MARKER)
    assert "영어 패턴을 가져오지 못했습니다" in store.posted[0][1]


@pytest.mark.anyio
async def test_one_bad_issue_does_not_stop_the_run(store: FakeRecordStore, content: FakeContentClient) -> None:
    sender = RecordingSender(per_address={"reader@example.com": SendResult(ok=False, status=550, body="no")})
    store.issues.extend([approved(1), approved(2, body=subscriber_body("second@example.com"))])
    # The failure report itself fails too; the run still continues.
    store.fail_comment_for.add(1)

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary(sent=1, skipped=0, failed=1)
    assert [mail["to"] for mail in sender.sent] == ["reader@example.com", "second@example.com"]
    assert [number for number, _ in store.posted] == [2]


@pytest.mark.anyio
async def test_sent_mail_counts_as_sent_when_dispatch_comment_fails(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(approved(1))
    store.fail_next_comments = 1

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary(sent=1, skipped=0, failed=0)
    assert len(sender.sent) == 1
    assert store.posted == []
    assert not any(FAILURE_MARKER in body for _, body in store.posted)


@pytest.mark.anyio
async def test_listing_failure_is_fatal(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.fail_listing = True

    with pytest.raises(UpstreamError):
        await make_job(store, content, sender).run()

    assert sender.sent == []


@pytest.mark.anyio
async def test_dry_run_renders_without_sending_or_commenting(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.extend([approved(1), approved(2, body="no email here")])

    summary = await make_job(store, content, sender, dry_run=True).run()

    assert summary == DispatchSummary(sent=0, skipped=2, failed=0)
    assert sender.sent == []
    assert store.posted == []
    assert content.calls == ["english-pattern", "it-news"]


@pytest.mark.anyio
async def test_mixed_run_counts_and_records_metrics(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.extend(
        [
            approved(1),
            approved(2, body="nothing useful"),
            approved(3, body=subscriber_body("recent@example.com", "it-news")),
        ]
    )
    store.add_comment(3, f"{DISPATCH_MARKER} sent", hours_ago=2)

    summary = await make_job(store, content, sender).run()

    assert summary == DispatchSummary(sent=1, skipped=2, failed=0)
    snapshot = metrics.snapshot()
    assert snapshot["dispatch_runs"] == 1
    assert snapshot["dispatch_sent"] == 1
    assert snapshot["dispatch_skipped"] == 2


@pytest.mark.anyio
async def test_second_run_within_interval_sends_nothing(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    store.issues.append(approved(1))

    first = await make_job(store, content, sender).run()
    second = await make_job(store, content, sender).run()

    assert first.sent == 1
    assert second == DispatchSummary(sent=0, skipped=1, failed=0)
    assert len(sender.sent) == 1


@pytest.mark.anyio
async def test_render_content_fetches_only_requested_feeds(content: FakeContentClient) -> None:
    rendered = await render_content(["it-news"], content)

    assert content.calls == ["it-news"]
    assert "칩이 더 빨라진다" in rendered.text
    assert "오늘의 영어 패턴" not in rendered.text


def test_cards_tolerate_partial_documents() -> None:
    assert pattern_cards({"patterns": [{"pattern": "Let's ...", "meaning": "~하자"}, {"meaning": "no pattern"}]}) == [
        {"pattern": "Let's ...", "meaning": "~하자", "example": None}
    ]
    assert news_cards({"sources": [{"title": {"original": "Only original"}, "summary": "plain"}]}) == [
        {"title": "Only original", "summary": "plain", "url": ""}
    ]
    assert pattern_cards({}) == []
    assert news_cards({}) == []


@pytest.mark.anyio
async def test_intake_approval_and_dispatch_scenario(
    store: FakeRecordStore, content: FakeContentClient, sender: RecordingSender
) -> None:
    issue = await request_subscription(store, "a@b.com", ["it-news"], now=NOW)
    assert issue.labels == ("pending",)
    assert "이메일: a@b.com" in issue.body
    assert "구독 항목: it-news" in issue.body

    store.issues[0] = replace(issue, labels=("approved",))
    first = await make_job(store, content, sender).run()

    assert first == DispatchSummary(sent=1, skipped=0, failed=0)
    assert content.calls == ["it-news"]
    assert sender.sent[0]["to"] == "a@b.com"
    assert store.posted == [(issue.number, f"{DISPATCH_MARKER} 2024-05-01T09:30:00.000Z 발송 완료 — 항목: it-news")]

    second = await make_job(store, content, sender).run()

    assert second == DispatchSummary(sent=0, skipped=1, failed=0)
    assert len(sender.sent) == 1
    assert len(store.posted) == 1
