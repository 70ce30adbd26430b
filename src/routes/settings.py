"""Settings and connection-test routes used by an external settings UI."""

from __future__ import annotations

import logging
from contextlib import suppress

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.clients.gitlab_client import GitLabClient
from src.clients.telegram_client import TelegramClient
from src.database import get_db
from src.schemas.cycle import ConnectionTestRequest, ConnectionTestResponse
from src.schemas.settings import NotifierSettings
from src.store import CheckpointStore
from src.templates.telegram_templates import build_connection_test_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["settings"])


@router.get("/settings", response_model=NotifierSettings)
async def get_settings(db: AsyncSession = Depends(get_db)) -> NotifierSettings:
    return (await CheckpointStore(db).get_settings()).masked()


@router.put("/settings", response_model=NotifierSettings)
async def put_settings(
    payload: NotifierSettings,
    db: AsyncSession = Depends(get_db),
) -> NotifierSettings:
    """Replace the settings document.

    Masked tokens (as returned by ``GET /settings``) keep the stored value.
    """
    store = CheckpointStore(db)
    current = await store.get_settings()
    updates = {}
    if payload.gitlab_token.startswith("***"):
        updates["gitlab_token"] = current.gitlab_token
    if payload.telegram_bot_token.startswith("***"):
        updates["telegram_bot_token"] = current.telegram_bot_token
    saved = await store.save_settings(payload.model_copy(update=updates))
    logger.info("Settings updated (%d projects, enabled=%s)", len(saved.projects), saved.enabled)
    return saved.masked()


@router.post("/telegram/test", response_model=ConnectionTestResponse)
async def test_telegram(
    payload: ConnectionTestRequest,
    db: AsyncSession = Depends(get_db),
) -> ConnectionTestResponse:
    stored = await CheckpointStore(db).get_settings()
    telegram = None
    try:
        telegram = TelegramClient(
            payload.bot_token or stored.telegram_bot_token,
            payload.chat_id or stored.telegram_chat_id,
        )
        me = await telegram.get_me()
        await telegram.send_message(build_connection_test_message())
        return ConnectionTestResponse(success=True, username=me.get("username"))
    except Exception as exc:
        logger.warning("Telegram connection test failed: %s", exc)
        return ConnectionTestResponse(success=False, error=str(exc))
    finally:
        if telegram is not None:
            with suppress(Exception):
                await telegram.close()


@router.post("/gitlab/test", response_model=ConnectionTestResponse)
async def test_gitlab(
    payload: ConnectionTestRequest,
    db: AsyncSession = Depends(get_db),
) -> ConnectionTestResponse:
    stored = await CheckpointStore(db).get_settings()
    gitlab = None
    try:
        gitlab = GitLabClient(
            payload.gitlab_url or stored.gitlab_url,
            payload.gitlab_token or stored.gitlab_token,
        )
        user = await gitlab.get_current_user()
        return ConnectionTestResponse(success=True, username=user.username)
    except Exception as exc:
        logger.warning("GitLab connection test failed: %s", exc)
        return ConnectionTestResponse(success=False, error=str(exc))
    finally:
        if gitlab is not None:
            with suppress(Exception):
                await gitlab.close()
