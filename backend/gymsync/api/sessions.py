"""Workout sessions, from the active workout to resolving the remote id on demand."""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional, Dict
from pydantic import BaseModel

from ..core.exceptions import NotFound, SyncRequired, ValidationError
from ..models.record import Collection
from ..services.activity import ActivityService
from ..services.local_store import LocalRecordStore
from ..services.offline_sync import SyncEngine
from .deps import get_activity_service, get_store, get_sync_engine

router = APIRouter(tags=["sessions"])


class SessionCreate(BaseModel):
    split_id: Optional[str] = None
    day_index: Optional[int] = None
    day_name: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    notes: Optional[str] = None
    exercises: List[Dict] = []


class RemoteIdResponse(BaseModel):
    local_id: str
    database_id: str


@router.post("/users/{user_id}/sessions", status_code=status.HTTP_201_CREATED)
def complete_session(
    user_id: str,
    session_in: SessionCreate,
    activity: ActivityService = Depends(get_activity_service),
):
    session = activity.complete_session(user_id, session_in.model_dump(exclude_none=True))
    return session.to_dict()


@router.get("/sessions/{session_id}")
def get_session(session_id: str, store: LocalRecordStore = Depends(get_store)):
    try:
        return store.get(Collection.WORKOUT_SESSIONS, session_id).to_dict()
    except NotFound:
        raise HTTPException(status_code=404, detail="Workout session not found")


@router.get("/sessions/{session_id}/remote-id", response_model=RemoteIdResponse)
async def resolve_session_remote_id(
    session_id: str,
    engine: SyncEngine = Depends(get_sync_engine),
):
    """Database id for a session, syncing it first if it has not been pushed yet."""
    try:
        database_id = await engine.ensure_resolved(session_id, Collection.WORKOUT_SESSIONS)
    except NotFound:
        raise HTTPException(status_code=404, detail="Workout session not found")
    except SyncRequired as e:
        raise HTTPException(status_code=409, detail=str(e))
    return RemoteIdResponse(local_id=session_id, database_id=database_id)


class ActiveWorkoutStart(BaseModel):
    split_id: Optional[str] = None
    day_index: Optional[int] = None
    day_name: Optional[str] = None
    exercises: List[Dict] = []


class SetUpdate(BaseModel):
    reps: Optional[int] = None
    weight: Optional[float] = None
    completed: Optional[bool] = None


class ActiveWorkoutFinish(BaseModel):
    notes: Optional[str] = None


@router.post("/users/{user_id}/active-workout", status_code=status.HTTP_201_CREATED)
def start_workout(
    user_id: str,
    workout_in: ActiveWorkoutStart,
    activity: ActivityService = Depends(get_activity_service),
):
    """Start a workout from split-day targets, or return the one already in progress."""
    workout = activity.start_workout(
        user_id,
        split_id=workout_in.split_id,
        day_index=workout_in.day_index,
        day_name=workout_in.day_name,
        template=workout_in.exercises,
    )
    return workout.to_dict()


@router.get("/users/{user_id}/active-workout")
def get_active_workout(user_id: str, activity: ActivityService = Depends(get_activity_service)):
    workout = activity.active_workout(user_id)
    if workout is None:
        raise HTTPException(status_code=404, detail="No active workout")
    return workout.to_dict()


@router.patch("/users/{user_id}/active-workout/{workout_id}/exercises/{exercise_id}/sets/{set_index}")
def update_set(
    user_id: str,
    workout_id: str,
    exercise_id: str,
    set_index: int,
    set_in: SetUpdate,
    activity: ActivityService = Depends(get_activity_service),
):
    try:
        workout = activity.update_set(
            user_id, workout_id, exercise_id, set_index, set_in.model_dump(exclude_none=True)
        )
    except NotFound:
        raise HTTPException(status_code=404, detail="No matching active workout")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return workout.to_dict()


@router.post("/users/{user_id}/active-workout/{workout_id}/complete", status_code=status.HTTP_201_CREATED)
def finish_workout(
    user_id: str,
    workout_id: str,
    finish_in: ActiveWorkoutFinish,
    activity: ActivityService = Depends(get_activity_service),
):
    try:
        session = activity.finish_workout(user_id, workout_id, notes=finish_in.notes)
    except NotFound:
        raise HTTPException(status_code=404, detail="No matching active workout")
    return session.to_dict()


@router.delete("/users/{user_id}/active-workout/{workout_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_workout(
    user_id: str,
    workout_id: str,
    activity: ActivityService = Depends(get_activity_service),
):
    activity.cancel_workout(user_id, workout_id)


@router.get("/users/{user_id}/sessions/today")
def todays_completed_workout(
    user_id: str,
    split_id: Optional[str] = None,
    day_index: Optional[int] = None,
    activity: ActivityService = Depends(get_activity_service),
):
    session = activity.todays_completed_workout(user_id, split_id, day_index)
    if session is None:
        raise HTTPException(status_code=404, detail="No workout completed today for this day")
    return session.to_dict()
