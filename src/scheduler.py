"""Trigger queue feeding the poll orchestrator.

Both the periodic ticker and "check now" requests put a ``CheckRequest`` on
one queue; a single worker drains it, so cycles run strictly one after
another.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.config import settings
from src.database import async_session
from src.handlers.poll_orchestrator import PollOrchestrator
from src.schemas.cycle import CycleResult
from src.schemas.settings import DEFAULT_CHECK_INTERVAL, MAX_CHECK_INTERVAL, MIN_CHECK_INTERVAL
from src.store import CheckpointStore

logger = logging.getLogger(__name__)


@dataclass
class CheckRequest:
    trigger: str
    result: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future())


def clamp_interval(minutes: int | None) -> int:
    if not minutes:
        return DEFAULT_CHECK_INTERVAL
    return max(MIN_CHECK_INTERVAL, min(MAX_CHECK_INTERVAL, int(minutes)))


class PollScheduler:
    def __init__(self, orchestrator: PollOrchestrator | None = None) -> None:
        self.orchestrator = orchestrator or PollOrchestrator()
        self._queue: asyncio.Queue[CheckRequest] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []
        self.last_result: CycleResult | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def request_check(self, trigger: str = "manual") -> CycleResult:
        """Queue a cycle and wait for its result."""
        request = CheckRequest(trigger=trigger)
        await self._queue.put(request)
        return await request.result

    def request_periodic_check(self) -> bool:
        """Queue a timer cycle unless one is already waiting."""
        if not self._queue.empty():
            logger.debug("Check already queued, dropping periodic tick")
            return False
        request = CheckRequest(trigger="periodic")
        self._queue.put_nowait(request)
        return True

    async def _worker(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                result = await self.orchestrator.run_cycle(request.trigger)
                self.last_result = result
                if not request.result.done():
                    request.result.set_result(result)
            except Exception as exc:
                logger.exception("Poll cycle crashed")
                if not request.result.done():
                    request.result.set_exception(exc)
            finally:
                self._queue.task_done()

    async def _current_interval(self) -> int:
        async with async_session() as db:
            user_settings = await CheckpointStore(db).get_settings()
        return clamp_interval(user_settings.check_interval_minutes)

    async def _ticker(self) -> None:
        await asyncio.sleep(settings.startup_delay_seconds)
        while True:
            self.request_periodic_check()
            try:
                interval = await self._current_interval()
            except Exception:
                logger.exception("Could not read check interval, using default")
                interval = DEFAULT_CHECK_INTERVAL
            logger.debug(
                "Next periodic check in %d minutes (at %s)",
                interval,
                datetime.now(timezone.utc).isoformat(),
            )
            await asyncio.sleep(interval * 60)

    def start(self, periodic: bool = True) -> None:
        if self._tasks:
            return
        self._tasks.append(asyncio.create_task(self._worker(), name="poll-worker"))
        if periodic:
            self._tasks.append(asyncio.create_task(self._ticker(), name="poll-ticker"))
        logger.info("Poll scheduler started (periodic=%s)", periodic)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Poll scheduler stopped")
