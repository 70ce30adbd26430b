"""Runs one poll cycle: probe GitLab, then each enabled detector.

Cycles never overlap: a request that arrives while one is in flight is
rejected with status ``busy``. Nothing raised inside a cycle escapes
``run_cycle``; failures end up in the connection status and the result.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.clients.gitlab_client import GitLabClient
from src.clients.telegram_client import TelegramClient
from src.database import async_session
from src.errors import ConfigurationMissing, SourceUnavailable
from src.handlers.comment_detector import check_mr_comments
from src.handlers.context import CycleContext
from src.handlers.dispatcher import NotificationDispatcher
from src.handlers.pipeline_detector import check_pipelines
from src.schemas.cycle import CycleResult
from src.schemas.settings import NotifierSettings
from src.store import CheckpointStore

logger = logging.getLogger(__name__)


class PollOrchestrator:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or async_session
        self._lock = asyncio.Lock()

    async def run_cycle(self, trigger: str = "manual") -> CycleResult:
        if self._lock.locked():
            logger.info("Cycle already in progress, rejecting %s trigger", trigger)
            return CycleResult(
                status="busy",
                reason="a cycle is already running",
                started_at=datetime.now(timezone.utc),
            )
        async with self._lock:
            async with self._session_factory() as db:
                return await self._run(CheckpointStore(db), trigger)

    async def _load_settings(self, store: CheckpointStore) -> NotifierSettings:
        user_settings = await store.get_settings()
        missing = user_settings.missing_configuration()
        if missing:
            raise ConfigurationMissing(missing)
        return user_settings

    async def _require_available(self, store: CheckpointStore, gitlab: GitLabClient) -> None:
        availability = await gitlab.check_availability()
        await store.set_connection_status(availability.available, availability.error)
        if not availability.available:
            raise SourceUnavailable(availability.error or "GitLab is unavailable")

    async def _run(self, store: CheckpointStore, trigger: str) -> CycleResult:
        started_at = datetime.now(timezone.utc)
        logger.info("=== GitLab check started (%s) ===", trigger)

        try:
            user_settings = await self._load_settings(store)
        except ConfigurationMissing as exc:
            logger.info("Skipping cycle: %s", exc)
            return CycleResult(status="skipped", reason=str(exc), started_at=started_at)

        logger.debug(
            "Settings: comments=%s pipelines=%s projects=%d",
            user_settings.notify_mr_comments,
            user_settings.notify_pipelines,
            len(user_settings.projects),
        )

        gitlab = None
        telegram = None
        try:
            gitlab = GitLabClient(user_settings.gitlab_url, user_settings.gitlab_token)
            await self._require_available(store, gitlab)

            telegram = TelegramClient(user_settings.telegram_bot_token, user_settings.telegram_chat_id)
            ctx = CycleContext(
                settings=user_settings,
                store=store,
                gitlab=gitlab,
                dispatcher=NotificationDispatcher(telegram, store, gitlab.base_url),
                started_at=started_at,
            )

            # Each detector contains its own failures, so one stream never stops the other.
            streams = []
            if user_settings.notify_mr_comments:
                streams.append(await check_mr_comments(ctx))
            if user_settings.notify_pipelines:
                streams.append(await check_pipelines(ctx))

        except SourceUnavailable as exc:
            logger.error("GitLab unavailable: %s", exc)
            return CycleResult(
                status="unavailable",
                reason=str(exc),
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )
        except Exception as exc:
            logger.exception("GitLab check failed")
            with suppress(Exception):
                await store.db.rollback()
                await store.set_connection_status(False, str(exc)[:500])
            return CycleResult(
                status="failed",
                reason=str(exc),
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )
        finally:
            for client in (gitlab, telegram):
                if client is not None:
                    with suppress(Exception):
                        await client.close()

        finished_at = datetime.now(timezone.utc)
        logger.info(
            "=== GitLab check finished in %.2fs ===",
            (finished_at - started_at).total_seconds(),
        )
        return CycleResult(
            status="completed",
            started_at=started_at,
            finished_at=finished_at,
            streams=streams,
        )
