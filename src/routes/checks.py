"""Check-now trigger and status routes."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import get_db
from src.schemas.cycle import CycleResult, StatusResponse
from src.store import STREAMS, CheckpointStore

router = APIRouter(tags=["checks"])


@router.post("/checks", response_model=CycleResult)
async def check_now(request: Request) -> CycleResult:
    """Queue an immediate poll cycle and return its result.

    Runs behind any cycle that is already queued or running.
    """
    return await request.app.state.scheduler.request_check("manual")


@router.get("/status", response_model=StatusResponse)
async def get_status(db: AsyncSession = Depends(get_db)) -> StatusResponse:
    store = CheckpointStore(db)
    return StatusResponse(
        connection=await store.get_connection_status(),
        unread_count=await store.get_unread_count(),
        watermarks={stream: await store.get_watermark(stream) for stream in STREAMS},
        settings=(await store.get_settings()).masked(),
    )


@router.post("/unread/reset")
async def reset_unread(db: AsyncSession = Depends(get_db)) -> dict:
    await CheckpointStore(db).reset_unread_count()
    return {"unread_count": 0}
