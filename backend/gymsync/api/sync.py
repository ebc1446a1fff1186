"""Sync API: manual sync trigger and pending status."""
from fastapi import APIRouter, Depends
from typing import Optional

from ..services.offline_sync import SyncEngine
from .deps import get_sync_engine

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/")
async def manual_sync(
    user_id: Optional[str] = None,
    engine: SyncEngine = Depends(get_sync_engine),
):
    """Push pending records. Skipped, not failed, when the device is offline."""
    result = await engine.manual_sync()
    body = result.to_dict()
    if user_id:
        body["calendar_days_backfilled"] = await engine.pull_calendar(user_id)
    return body


@router.get("/status")
async def sync_status(engine: SyncEngine = Depends(get_sync_engine)):
    return await engine.sync_status()
