from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional, Dict
from pydantic import BaseModel
from datetime import datetime

from ..core.exceptions import NotFound, ValidationError
from ..models.record import Collection
from ..services.local_store import LocalRecordStore
from .deps import get_store

router = APIRouter(prefix="/saved-workouts", tags=["saved-workouts"])


class SavedWorkoutCreate(BaseModel):
    name: str
    description: Optional[str] = None
    emoji: Optional[str] = None
    workout_type: Optional[str] = None
    exercises: List[Dict] = []


class SavedWorkoutUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    emoji: Optional[str] = None
    workout_type: Optional[str] = None
    exercises: Optional[List[Dict]] = None


class SavedWorkoutResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    emoji: str
    workout_type: Optional[str]
    exercises: List[Dict]
    created_at: datetime
    updated_at: datetime


@router.get("/", response_model=List[SavedWorkoutResponse])
def list_saved_workouts(store: LocalRecordStore = Depends(get_store)):
    return [w.to_dict() for w in store.list(Collection.SAVED_WORKOUTS)]


@router.post("/", response_model=SavedWorkoutResponse, status_code=status.HTTP_201_CREATED)
def create_saved_workout(
    workout_in: SavedWorkoutCreate,
    store: LocalRecordStore = Depends(get_store),
):
    try:
        workout = store.create(Collection.SAVED_WORKOUTS, workout_in.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return workout.to_dict()


@router.get("/{workout_id}", response_model=SavedWorkoutResponse)
def get_saved_workout(workout_id: str, store: LocalRecordStore = Depends(get_store)):
    try:
        return store.get(Collection.SAVED_WORKOUTS, workout_id).to_dict()
    except NotFound:
        raise HTTPException(status_code=404, detail="Saved workout not found")


@router.patch("/{workout_id}", response_model=SavedWorkoutResponse)
def update_saved_workout(
    workout_id: str,
    updates: SavedWorkoutUpdate,
    store: LocalRecordStore = Depends(get_store),
):
    changes = updates.model_dump(exclude_unset=True)
    try:
        workout = store.update(Collection.SAVED_WORKOUTS, workout_id, changes)
    except NotFound:
        raise HTTPException(status_code=404, detail="Saved workout not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return workout.to_dict()


@router.delete("/{workout_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_saved_workout(workout_id: str, store: LocalRecordStore = Depends(get_store)):
    """Deleting an already-deleted workout also succeeds."""
    store.delete(Collection.SAVED_WORKOUTS, workout_id)
