"""Rest days, streaks and the weekly free rest day."""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from ..core.exceptions import QuotaExceeded
from ..services.activity import ActivityService
from ..services.derived_state import DerivedState
from ..services.local_store import LocalRecordStore
from .deps import get_activity_service, get_derived_state, get_store

router = APIRouter(tags=["rest-days"])


class RestDayCreate(BaseModel):
    activities: List[str] = []
    caption: Optional[str] = None
    use_free_day: bool = False


class RestDayResponse(BaseModel):
    date: datetime
    activities: List[str]
    caption: Optional[str]


class StreakResponse(BaseModel):
    user_id: str
    streak: int


class FreeRestDayResponse(BaseModel):
    available: bool


@router.post("/users/{user_id}/rest-days", response_model=RestDayResponse, status_code=status.HTTP_201_CREATED)
def log_rest_day(
    user_id: str,
    rest_day: RestDayCreate,
    activity: ActivityService = Depends(get_activity_service),
):
    try:
        completion = activity.log_rest_day(
            user_id,
            activities=rest_day.activities,
            caption=rest_day.caption,
            use_free_day=rest_day.use_free_day,
        )
    except QuotaExceeded as e:
        raise HTTPException(status_code=422, detail=str(e))
    return completion.to_dict()


@router.get("/users/{user_id}/rest-days", response_model=List[RestDayResponse])
def list_rest_days(user_id: str, store: LocalRecordStore = Depends(get_store)):
    return [c.to_dict() for c in store.list_rest_days(user_id)]


@router.delete("/users/{user_id}/today", status_code=status.HTTP_204_NO_CONTENT)
def undo_today(user_id: str, activity: ActivityService = Depends(get_activity_service)):
    activity.undo_today(user_id)


@router.get("/users/{user_id}/streak", response_model=StreakResponse)
def current_streak(user_id: str, derived: DerivedState = Depends(get_derived_state)):
    return StreakResponse(user_id=user_id, streak=derived.current_streak(user_id))


@router.get("/free-rest-day", response_model=FreeRestDayResponse)
def free_rest_day_status(derived: DerivedState = Depends(get_derived_state)):
    return FreeRestDayResponse(available=derived.is_free_rest_day_available())


@router.post("/free-rest-day", response_model=FreeRestDayResponse)
def consume_free_rest_day(derived: DerivedState = Depends(get_derived_state)):
    if not derived.is_free_rest_day_available():
        raise HTTPException(status_code=422, detail="Free rest day already used this week")
    derived.consume_free_rest_day()
    return FreeRestDayResponse(available=derived.is_free_rest_day_available())


@router.delete("/free-rest-day", response_model=FreeRestDayResponse)
def revoke_free_rest_day(derived: DerivedState = Depends(get_derived_state)):
    derived.revoke_free_rest_day_if_used_today()
    return FreeRestDayResponse(available=derived.is_free_rest_day_available())
