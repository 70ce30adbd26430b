"""Detects pipelines whose status changed into a terminal one.

The status ledger is the baseline for the next cycle. A pipeline seen for
the first time only establishes that baseline. When a transition cannot be
delivered, the old status is kept and the watermark is held just below the
pipeline's ``updated_at``, so the next cycle detects the same transition
again. After ``max_send_attempts`` failures the new status is recorded
anyway and the alert is dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from src.config import settings
from src.errors import SourceAPIError
from src.handlers.context import CycleContext, next_watermark
from src.handlers.relevance import is_relevant_pipeline
from src.models.failed_send import pipeline_send_key
from src.models.pipeline_status import pipeline_key
from src.models.watermark import STREAM_PIPELINES
from src.schemas.cycle import PipelineChange, StreamResult
from src.schemas.gitlab import Pipeline
from src.store import EPOCH

logger = logging.getLogger(__name__)


def select_recent_terminal(pipelines: list[Pipeline], watermark: datetime) -> list[Pipeline]:
    return [p for p in pipelines if p.updated_at > watermark and p.is_terminal]


@dataclass
class _PipelineScan:
    watermark: datetime
    result: StreamResult
    retry_from: datetime | None = None

    def keep_for_retry(self, pipeline: Pipeline) -> None:
        if self.retry_from is None or pipeline.updated_at < self.retry_from:
            self.retry_from = pipeline.updated_at


async def _notify_transition(ctx: CycleContext, scan: _PipelineScan, key: str, change: PipelineChange) -> bool:
    """Send one transition. Returns False while the alert awaits a retry."""
    send_key = pipeline_send_key(key)
    try:
        await ctx.dispatcher.dispatch_pipeline(change)
    except Exception as exc:
        scan.result.failed += 1
        logger.error("Notification for pipeline %s failed: %s", key, exc)
        attempts = await ctx.store.record_send_failure(send_key, str(exc))
        if attempts < settings.max_send_attempts:
            scan.keep_for_retry(change.pipeline)
            return False
        logger.error("Giving up on pipeline %s after %d failed attempts", key, attempts)
    else:
        scan.result.notified += 1
    await ctx.store.clear_send_failure(send_key)
    return True


async def _check_project(ctx: CycleContext, scan: _PipelineScan, project_id: str) -> None:
    pipelines = select_recent_terminal(await ctx.gitlab.get_pipelines(project_id), scan.watermark)
    scan.result.checked += len(pipelines)

    for pipeline in pipelines:
        if not is_relevant_pipeline(pipeline, ctx.username):
            continue
        scan.result.relevant += 1

        key = pipeline_key(project_id, pipeline.id)
        previous = await ctx.store.get_pipeline_status(key)
        if previous is not None and previous != pipeline.status:
            logger.info("Pipeline %s: %s -> %s", key, previous, pipeline.status)
            change = PipelineChange(project_id=project_id, pipeline=pipeline, previous_status=previous)
            if not await _notify_transition(ctx, scan, key, change):
                continue

        await ctx.store.set_pipeline_status(key, project_id, pipeline.id, pipeline.status)


async def check_pipelines(ctx: CycleContext) -> StreamResult:
    scan = _PipelineScan(
        watermark=await ctx.store.get_watermark(STREAM_PIPELINES) or EPOCH,
        result=StreamResult(stream=STREAM_PIPELINES),
    )
    result = scan.result

    try:
        for project_id in ctx.settings.projects:
            await _check_project(ctx, scan, project_id)
    except SourceAPIError as exc:
        logger.error("Pipeline check aborted: %s", exc)
        result.error = str(exc)
        return result
    except Exception as exc:
        logger.exception("Pipeline check failed")
        await ctx.store.db.rollback()
        result.error = str(exc) or type(exc).__name__
        return result

    logger.info(
        "Pipelines: %d terminal checked, %d relevant, %d notified, %d failed",
        result.checked, result.relevant, result.notified, result.failed,
    )
    result.watermark_advanced = await ctx.store.set_watermark(
        STREAM_PIPELINES, next_watermark(ctx.started_at, scan.retry_from)
    )
    return result
