"""FastAPI application for gitlab-notifier."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import settings
from src.database import async_session, close_db, init_db
from src.routes.checks import router as checks_router
from src.routes.settings import router as settings_router
from src.scheduler import PollScheduler
from src.store import CheckpointStore

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _bootstrap_state() -> None:
    async with async_session() as db:
        store = CheckpointStore(db)
        await store.seed_settings()
        await store.initialize_watermarks(datetime.now(timezone.utc))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("gitlab-notifier starting up")
    await init_db()
    await _bootstrap_state()
    scheduler = PollScheduler()
    app.state.scheduler = scheduler
    scheduler.start(periodic=settings.scheduler_enabled)
    yield
    logger.info("gitlab-notifier shutting down")
    await scheduler.stop()
    await close_db()


app = FastAPI(
    title="GitLab Notifier",
    description="Telegram alerts for GitLab merge request comments and pipeline results",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checks_router, prefix=settings.api_prefix)
app.include_router(settings_router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "gitlab-notifier"}
