"""Per-cycle context passed explicitly to every detector."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from src.clients.gitlab_client import GitLabClient
from src.handlers.dispatcher import NotificationDispatcher
from src.schemas.settings import NotifierSettings
from src.store import CheckpointStore


@dataclass
class CycleContext:
    settings: NotifierSettings
    store: CheckpointStore
    gitlab: GitLabClient
    dispatcher: NotificationDispatcher
    # Watermarks advance to this instant, never to an item's own timestamp.
    started_at: datetime

    @property
    def username(self) -> str:
        return self.settings.gitlab_username


def next_watermark(started_at: datetime, retry_from: datetime | None) -> datetime:
    """Cycle start, held just below the oldest item still awaiting a retry."""
    if retry_from is None:
        return started_at
    return min(started_at, retry_from - timedelta(microseconds=1))
