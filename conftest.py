"""Shared test configuration — must be loaded before src modules."""

import os

# Override database URL before any src modules are imported.
os.environ["NOTIFIER_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["NOTIFIER_SCHEDULER_ENABLED"] = "false"

import pytest
from src.database import Base, async_session, engine
from src.models import (  # noqa: F401
    failed_send,
    notifier_settings,
    notifier_state,
    pipeline_status,
    processed_note,
    watermark,
)
from src.store import CheckpointStore


@pytest.fixture(autouse=True)
async def _reset_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def store():
    async with async_session() as db:
        yield CheckpointStore(db)
