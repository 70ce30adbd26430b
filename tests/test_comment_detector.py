"""Tests for merge request comment detection."""

from datetime import timedelta

from sqlalchemy import delete

from src.errors import SinkAPIError, SourceAPIError
from src.handlers.comment_detector import check_mr_comments
from src.models.watermark import STREAM_COMMENTS, Watermark

from tests.factories import (
    NOW,
    cycle_context,
    merge_request,
    mock_gitlab,
    mock_telegram,
    note,
    user,
)


async def test_end_to_end_comment_notification(store):
    """Reviewer alice gets carol's long comment, truncated, exactly once."""
    t0 = NOW - timedelta(hours=3)
    await store.set_watermark(STREAM_COMMENTS, t0)

    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [
        merge_request(iid=1, author="bob", reviewers=[user("alice")]),
    ]
    body = "a" * 400
    gitlab.get_merge_request_notes.return_value = [
        note(501, t0 + timedelta(hours=1), author="carol", body=body),
    ]
    telegram = mock_telegram()

    result = await check_mr_comments(cycle_context(store, gitlab, telegram))

    assert result.notified == 1
    assert result.error is None
    message = telegram.send_message.await_args.args[0]
    assert "a" * 300 + "..." in message
    assert "a" * 301 not in message
    assert await store.is_note_processed(501)
    assert await store.get_unread_count() == 1
    assert await store.get_watermark(STREAM_COMMENTS) == NOW
    gitlab.get_merge_request_participants.assert_not_awaited()


async def test_replaying_same_comments_is_idempotent(store):
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="alice")]
    gitlab.get_merge_request_notes.return_value = [
        note(1, NOW - timedelta(minutes=30)),
        note(2, NOW - timedelta(minutes=20)),
    ]
    telegram = mock_telegram()

    first = await check_mr_comments(cycle_context(store, gitlab, telegram))
    # Even with the watermark gone, the dedup ledger blocks a resend.
    await store.db.execute(delete(Watermark))
    await store.db.commit()
    second = await check_mr_comments(cycle_context(store, gitlab, telegram, started_at=NOW + timedelta(minutes=2)))

    assert first.notified == 2
    assert second.notified == 0
    assert telegram.send_message.await_count == 2


async def test_comments_older_than_seven_days_are_never_notified(store):
    """A reset watermark must not flood the chat with old comments."""
    await store.set_watermark(STREAM_COMMENTS, NOW - timedelta(days=30))
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="alice")]
    gitlab.get_merge_request_notes.return_value = [
        note(1, NOW - timedelta(days=10)),
        note(2, NOW - timedelta(days=6)),
    ]
    telegram = mock_telegram()

    result = await check_mr_comments(cycle_context(store, gitlab, telegram))

    assert result.notified == 1
    assert not await store.is_note_processed(1)
    assert await store.is_note_processed(2)


async def test_comments_at_or_before_watermark_are_skipped(store):
    await store.set_watermark(STREAM_COMMENTS, NOW - timedelta(hours=1))
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="alice")]
    gitlab.get_merge_request_notes.return_value = [
        note(1, NOW - timedelta(hours=1)),
        note(2, NOW - timedelta(hours=2)),
    ]
    telegram = mock_telegram()

    result = await check_mr_comments(cycle_context(store, gitlab, telegram))

    assert result.notified == 0
    telegram.send_message.assert_not_awaited()


async def test_own_comments_suppressed_by_default(store):
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="alice")]
    gitlab.get_merge_request_notes.return_value = [
        note(1, NOW - timedelta(minutes=5), author="alice"),
    ]
    telegram = mock_telegram()

    result = await check_mr_comments(cycle_context(store, gitlab, telegram))

    assert result.notified == 0
    telegram.send_message.assert_not_awaited()


async def test_own_comments_notified_when_enabled(store):
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="alice")]
    gitlab.get_merge_request_notes.return_value = [
        note(1, NOW - timedelta(minutes=5), author="alice"),
    ]
    telegram = mock_telegram()

    result = await check_mr_comments(
        cycle_context(store, gitlab, telegram, notify_own_comments=True)
    )

    assert result.notified == 1


async def test_system_notes_are_ignored(store):
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="alice")]
    gitlab.get_merge_request_notes.return_value = [
        note(1, NOW - timedelta(minutes=5), body="added 1 commit", system=True),
    ]
    telegram = mock_telegram()

    result = await check_mr_comments(cycle_context(store, gitlab, telegram))

    assert result.notified == 0


async def test_irrelevant_merge_requests_are_not_read(store):
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="bob")]
    gitlab.get_merge_request_participants.side_effect = SourceAPIError("GitLab API error: 500", 500)
    telegram = mock_telegram()

    result = await check_mr_comments(cycle_context(store, gitlab, telegram))

    assert result.relevant == 0
    assert result.error is None
    gitlab.get_merge_request_notes.assert_not_awaited()
    assert result.watermark_advanced is True


async def test_failed_send_is_isolated_and_retried_next_cycle(store):
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="alice")]
    failing = note(1, NOW - timedelta(minutes=10))
    gitlab.get_merge_request_notes.return_value = [
        failing,
        note(2, NOW - timedelta(minutes=5)),
    ]
    telegram = mock_telegram()
    telegram.send_message.side_effect = [
        SinkAPIError("Telegram API error: Too Many Requests"),
        {"ok": True},
        {"ok": True},
    ]

    first = await check_mr_comments(cycle_context(store, gitlab, telegram))

    assert first.notified == 1
    assert first.failed == 1
    assert not await store.is_note_processed(1)
    assert await store.is_note_processed(2)
    assert await store.get_unread_count() == 1
    # Held just below the failed note instead of jumping to the cycle start.
    watermark = await store.get_watermark(STREAM_COMMENTS)
    assert watermark < failing.created_at

    second = await check_mr_comments(
        cycle_context(store, gitlab, telegram, started_at=NOW + timedelta(minutes=2))
    )

    assert second.notified == 1
    assert await store.is_note_processed(1)
    assert telegram.send_message.await_count == 3
    assert await store.get_watermark(STREAM_COMMENTS) == NOW + timedelta(minutes=2)


async def test_note_given_up_after_max_attempts(store, monkeypatch):
    from src.config import settings

    monkeypatch.setattr(settings, "max_send_attempts", 2)
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.return_value = [merge_request(author="alice")]
    gitlab.get_merge_request_notes.return_value = [note(1, NOW - timedelta(minutes=10))]
    telegram = mock_telegram()
    telegram.send_message.side_effect = SinkAPIError("Telegram API error: chat not found")

    await check_mr_comments(cycle_context(store, gitlab, telegram))
    assert not await store.is_note_processed(1)

    # The second failure hits the cap; the note stops being retried.
    await check_mr_comments(cycle_context(store, gitlab, telegram, started_at=NOW + timedelta(minutes=2)))

    assert await store.is_note_processed(1)
    assert await store.get_unread_count() == 0
    assert await store.get_watermark(STREAM_COMMENTS) == NOW + timedelta(minutes=2)

    await check_mr_comments(cycle_context(store, gitlab, telegram, started_at=NOW + timedelta(minutes=4)))
    assert telegram.send_message.await_count == 2



async def test_listing_failure_aborts_cycle_and_keeps_watermark(store):
    t0 = NOW - timedelta(hours=1)
    await store.set_watermark(STREAM_COMMENTS, t0)
    gitlab = mock_gitlab()
    gitlab.get_merge_requests.side_effect = SourceAPIError("GitLab API error: 500", 500)
    telegram = mock_telegram()

    result = await check_mr_comments(cycle_context(store, gitlab, telegram, projects=["1", "2"]))

    assert result.error == "GitLab API error: 500"
    assert result.watermark_advanced is False
    assert await store.get_watermark(STREAM_COMMENTS) == t0
    assert gitlab.get_merge_requests.await_count == 1


async def test_notes_already_sent_survive_a_later_project_failure(store):
    gitlab = mock_gitlab()

    async def merge_requests(project_id, state):
        if project_id == "2":
            raise SourceAPIError("GitLab API error: 404", 404)
        return [merge_request(author="alice")]

    gitlab.get_merge_requests.side_effect = merge_requests
    gitlab.get_merge_request_notes.return_value = [note(1, NOW - timedelta(minutes=1))]
    telegram = mock_telegram()

    result = await check_mr_comments(cycle_context(store, gitlab, telegram, projects=["1", "2"]))

    assert result.notified == 1
    assert result.error is not None
    assert await store.is_note_processed(1)
    assert await store.get_watermark(STREAM_COMMENTS) is None
