"""Finds new notes on relevant merge requests and dispatches them.

A note is reported when all of the following hold:

1. it was created after the ``comments`` watermark;
2. it is at most ``comment_max_age_days`` old, so a reset watermark cannot
   flood the chat;
3. it was not written by the configured user, unless own comments are
   enabled;
4. it is not already in the dedup ledger.

The watermark moves to the cycle start time only when every project was
read successfully. A note whose send failed holds it just below that note's
creation time, so the next cycle sees the note again; notes already sent are
then skipped by the dedup ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.config import settings
from src.errors import SourceAPIError
from src.handlers.context import CycleContext, next_watermark
from src.handlers.relevance import filter_relevant_merge_requests
from src.models.failed_send import note_send_key
from src.models.watermark import STREAM_COMMENTS
from src.schemas.cycle import CommentChange, StreamResult
from src.schemas.gitlab import MergeRequest, Note
from src.store import EPOCH

logger = logging.getLogger(__name__)


def is_note_fresh(
    note: Note,
    watermark: datetime,
    oldest_allowed: datetime,
) -> bool:
    return note.created_at > watermark and note.created_at >= oldest_allowed


def is_own_note(note: Note, username: str) -> bool:
    return bool(username) and note.author.username == username


@dataclass
class _CommentScan:
    watermark: datetime
    oldest_allowed: datetime
    result: StreamResult
    retry_from: datetime | None = None

    def keep_for_retry(self, note: Note) -> None:
        if self.retry_from is None or note.created_at < self.retry_from:
            self.retry_from = note.created_at


async def _handle_note(
    ctx: CycleContext,
    scan: _CommentScan,
    project_id: str,
    mr: MergeRequest,
    note: Note,
) -> None:
    change = CommentChange(project_id=project_id, merge_request=mr, note=note)
    try:
        await ctx.dispatcher.dispatch_comment(change)
        scan.result.notified += 1
        return
    except Exception as exc:
        scan.result.failed += 1
        logger.error("Notification for note %d on %s!%d failed: %s", note.id, project_id, mr.iid, exc)
        error = str(exc)

    attempts = await ctx.store.record_send_failure(note_send_key(note.id), error)
    if attempts >= settings.max_send_attempts:
        logger.error("Giving up on note %d after %d failed attempts", note.id, attempts)
        await ctx.store.mark_note_processed(note.id)
    else:
        scan.keep_for_retry(note)


async def _check_project(ctx: CycleContext, scan: _CommentScan, project_id: str) -> None:
    merge_requests = await ctx.gitlab.get_merge_requests(project_id, "opened")
    scan.result.checked += len(merge_requests)

    relevant = await filter_relevant_merge_requests(
        ctx.gitlab, project_id, merge_requests, ctx.username,
        batch_size=settings.parallel_batch_size,
    )
    scan.result.relevant += len(relevant)

    for mr in relevant:
        notes = await ctx.gitlab.get_merge_request_notes(project_id, mr.iid)
        for note in notes:
            if note.system:
                continue
            if not is_note_fresh(note, scan.watermark, scan.oldest_allowed):
                continue
            if is_own_note(note, ctx.username) and not ctx.settings.notify_own_comments:
                continue
            if await ctx.store.is_note_processed(note.id):
                continue
            await _handle_note(ctx, scan, project_id, mr, note)


async def check_mr_comments(ctx: CycleContext) -> StreamResult:
    scan = _CommentScan(
        watermark=await ctx.store.get_watermark(STREAM_COMMENTS) or EPOCH,
        oldest_allowed=ctx.started_at - timedelta(days=settings.comment_max_age_days),
        result=StreamResult(stream=STREAM_COMMENTS),
    )
    result = scan.result

    if not ctx.settings.projects:
        logger.info("No projects configured for comment checks")

    try:
        for project_id in ctx.settings.projects:
            await _check_project(ctx, scan, project_id)
    except SourceAPIError as exc:
        # Keep the watermark so nothing in the unread projects is skipped.
        logger.error("Comment check aborted: %s", exc)
        result.error = str(exc)
        return result
    except Exception as exc:
        logger.exception("Comment check failed")
        await ctx.store.db.rollback()
        result.error = str(exc) or type(exc).__name__
        return result

    logger.info(
        "MR comments: %d merge requests checked, %d relevant, %d notified, %d failed",
        result.checked, result.relevant, result.notified, result.failed,
    )
    result.watermark_advanced = await ctx.store.set_watermark(
        STREAM_COMMENTS, next_watermark(ctx.started_at, scan.retry_from)
    )
    return result
