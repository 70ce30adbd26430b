"""Checkpoint & dedup store.

Thin async facade over the notifier tables: stream watermarks, the dedup
ledger of notified notes, the per-pipeline status ledger, the connection
status and the unread counter. Every mutating call commits, so a crash
mid-cycle never loses a dedup record that was written after a send.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.failed_send import FailedSend, note_send_key
from src.models.notifier_settings import SETTINGS_ROW_ID, NotifierSettingsRow
from src.models.notifier_state import STATE_ROW_ID, NotifierState
from src.models.pipeline_status import PipelineStatus
from src.models.processed_note import ProcessedNote
from src.models.watermark import STREAM_COMMENTS, STREAM_PIPELINES, Watermark
from src.schemas.cycle import ConnectionStatusResponse
from src.schemas.settings import NotifierSettings

logger = logging.getLogger(__name__)

STREAMS = (STREAM_COMMENTS, STREAM_PIPELINES)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; every stored time is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class CheckpointStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -- settings -----------------------------------------------------------

    async def get_settings(self) -> NotifierSettings:
        row = await self.db.get(NotifierSettingsRow, SETTINGS_ROW_ID)
        if row is None:
            return NotifierSettings()
        return NotifierSettings.model_validate_json(row.payload_json)

    async def save_settings(self, notifier_settings: NotifierSettings) -> NotifierSettings:
        row = await self.db.get(NotifierSettingsRow, SETTINGS_ROW_ID)
        payload = notifier_settings.model_dump_json()
        if row is None:
            self.db.add(NotifierSettingsRow(id=SETTINGS_ROW_ID, payload_json=payload))
        else:
            row.payload_json = payload
        await self.db.commit()
        return notifier_settings

    async def seed_settings(self) -> bool:
        """Write the env-provided defaults once, if no settings exist yet."""
        if await self.db.get(NotifierSettingsRow, SETTINGS_ROW_ID) is not None:
            return False
        await self.save_settings(NotifierSettings(
            gitlab_url=settings.default_gitlab_url,
            gitlab_token=settings.default_gitlab_token,
            gitlab_username=settings.default_gitlab_username,
            telegram_bot_token=settings.default_telegram_bot_token,
            telegram_chat_id=settings.default_telegram_chat_id,
            projects=settings.default_projects,
            check_interval_minutes=settings.default_check_interval_minutes,
        ))
        logger.info("Seeded notifier settings from environment defaults")
        return True

    # -- watermarks ---------------------------------------------------------

    async def get_watermark(self, stream: str) -> datetime | None:
        row = await self.db.get(Watermark, stream)
        return as_utc(row.checked_at) if row else None

    async def set_watermark(self, stream: str, when: datetime) -> bool:
        """Advance a stream's watermark. Returns False if ``when`` is older."""
        row = await self.db.get(Watermark, stream)
        if row is None:
            self.db.add(Watermark(stream=stream, checked_at=when))
        else:
            current = as_utc(row.checked_at)
            if when < current:
                logger.warning(
                    "Refusing to move %s watermark back from %s to %s",
                    stream, current.isoformat(), when.isoformat(),
                )
                return False
            row.checked_at = when
        await self.db.commit()
        logger.info("Watermark %s advanced to %s", stream, when.isoformat())
        return True

    async def initialize_watermarks(self, now: datetime) -> list[str]:
        """Seed missing watermarks with ``now`` on a fresh install.

        Only applies while the dedup ledger is empty, so a restart of a
        running installation never skips over unseen items.
        """
        noted = await self.db.scalar(select(func.count()).select_from(ProcessedNote))
        if noted:
            return []
        seeded = []
        for stream in STREAMS:
            if await self.db.get(Watermark, stream) is None:
                self.db.add(Watermark(stream=stream, checked_at=now))
                seeded.append(stream)
        if seeded:
            await self.db.commit()
            logger.info("Initialized watermarks %s to %s", seeded, now.isoformat())
        return seeded

    # -- dedup ledger -------------------------------------------------------

    async def is_note_processed(self, note_id: int) -> bool:
        return await self.db.get(ProcessedNote, note_id) is not None

    async def mark_note_processed(self, note_id: int, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        if await self.db.get(ProcessedNote, note_id) is None:
            self.db.add(ProcessedNote(note_id=note_id, notified_at=now))
        cutoff = now - timedelta(days=settings.processed_notes_retention_days)
        result = await self.db.execute(
            delete(ProcessedNote)
            .where(ProcessedNote.notified_at < cutoff)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(delete(FailedSend).where(FailedSend.item_key == note_send_key(note_id)))
        await self.db.commit()
        if result.rowcount:
            logger.debug("Evicted %d processed notes older than %s", result.rowcount, cutoff.isoformat())

    async def record_send_failure(self, item_key: str, error: str) -> int:
        """Count one more failed send for an item and return the total."""
        row = await self.db.get(FailedSend, item_key)
        now = datetime.now(timezone.utc)
        if row is None:
            row = FailedSend(item_key=item_key, send_attempts=0)
            self.db.add(row)
        row.send_attempts += 1
        row.last_error = error[:500]
        row.last_attempt_at = now
        await self.db.commit()
        return row.send_attempts

    async def clear_send_failure(self, item_key: str) -> None:
        await self.db.execute(delete(FailedSend).where(FailedSend.item_key == item_key))
        await self.db.commit()

    # -- pipeline status ledger ---------------------------------------------

    async def get_pipeline_status(self, key: str) -> str | None:
        row = await self.db.get(PipelineStatus, key)
        return row.status if row else None

    async def set_pipeline_status(self, key: str, project_id: str, pipeline_id: int, status: str) -> None:
        row = await self.db.get(PipelineStatus, key)
        if row is None:
            self.db.add(PipelineStatus(
                pipeline_key=key,
                project_id=str(project_id),
                pipeline_id=pipeline_id,
                status=status,
            ))
        elif row.status != status:
            row.status = status
        else:
            return
        await self.db.commit()

    # -- connection status & unread counter ---------------------------------

    async def _state(self) -> NotifierState:
        row = await self.db.get(NotifierState, STATE_ROW_ID)
        if row is None:
            row = NotifierState(id=STATE_ROW_ID, available=True, unread_count=0)
            self.db.add(row)
            await self.db.flush()
        return row

    async def get_connection_status(self) -> ConnectionStatusResponse:
        row = await self._state()
        return ConnectionStatusResponse(
            available=row.available,
            last_check=as_utc(row.last_check),
            error=row.error,
        )

    async def set_connection_status(self, available: bool, error: str | None = None) -> None:
        row = await self._state()
        row.available = available
        row.last_check = datetime.now(timezone.utc)
        row.error = error
        await self.db.commit()
        logger.info("Connection status: %s%s", "available" if available else "unavailable",
                    f" ({error})" if error else "")

    async def get_unread_count(self) -> int:
        return (await self._state()).unread_count

    async def increment_unread_count(self) -> int:
        row = await self._state()
        row.unread_count += 1
        await self.db.commit()
        return row.unread_count

    async def reset_unread_count(self) -> None:
        row = await self._state()
        row.unread_count = 0
        await self.db.commit()
