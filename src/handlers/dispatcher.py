"""Renders change items and sends them to Telegram.

A failed send raises ``SinkAPIError`` to the detector, which skips the item
without recording it, so the next cycle picks it up again.
"""

from __future__ import annotations

import logging

from src.clients.telegram_client import TelegramClient
from src.errors import SinkAPIError
from src.schemas.cycle import CommentChange, PipelineChange
from src.store import CheckpointStore
from src.templates.telegram_templates import build_mr_comment_message, build_pipeline_message

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, telegram: TelegramClient, store: CheckpointStore, gitlab_url: str) -> None:
        self._telegram = telegram
        self._store = store
        self._gitlab_url = gitlab_url

    async def _send(self, text: str) -> None:
        try:
            await self._telegram.send_message(text)
        except SinkAPIError:
            raise
        except Exception as exc:
            raise SinkAPIError(str(exc)) from exc

    async def dispatch_comment(self, change: CommentChange) -> None:
        await self._send(build_mr_comment_message(change, self._gitlab_url))
        await self._store.mark_note_processed(change.note.id)
        unread = await self._store.increment_unread_count()
        logger.info(
            "Notified note %d on %s!%d (unread=%d)",
            change.note.id, change.project_id, change.merge_request.iid, unread,
        )

    async def dispatch_pipeline(self, change: PipelineChange) -> None:
        await self._send(build_pipeline_message(change, self._gitlab_url))
        unread = await self._store.increment_unread_count()
        logger.info(
            "Notified pipeline %d in %s: %s -> %s (unread=%d)",
            change.pipeline.id, change.project_id, change.previous_status,
            change.pipeline.status, unread,
        )
