"""Body weight log for the progress charts."""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
from pydantic import BaseModel

from ..core.exceptions import ValidationError
from ..services.activity import ActivityService
from ..services.local_store import LocalRecordStore
from .deps import get_activity_service, get_store

router = APIRouter(tags=["body-weight"])


class BodyWeightCreate(BaseModel):
    weight: float


class BodyWeightResponse(BaseModel):
    date: str
    weight: float
    timestamp: Optional[str]


@router.post("/users/{user_id}/body-weight", response_model=BodyWeightResponse, status_code=status.HTTP_201_CREATED)
def log_body_weight(
    user_id: str,
    entry: BodyWeightCreate,
    activity: ActivityService = Depends(get_activity_service),
):
    """Record today's weight; logging again the same day replaces it."""
    try:
        return activity.log_body_weight(user_id, entry.weight).to_dict()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/users/{user_id}/body-weight", response_model=List[BodyWeightResponse])
def body_weight_log(user_id: str, store: LocalRecordStore = Depends(get_store)):
    return [e.to_dict() for e in store.body_weight_log(user_id)]


@router.delete("/users/{user_id}/body-weight", status_code=status.HTTP_204_NO_CONTENT)
def clear_body_weight_log(user_id: str, store: LocalRecordStore = Depends(get_store)):
    store.clear_body_weight_log(user_id)
