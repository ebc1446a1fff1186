"""FastAPI dependency providers; tests swap these via app.dependency_overrides."""
from ..services.activity import ActivityService, activity_service
from ..services.derived_state import DerivedState, derived_state
from ..services.local_store import LocalRecordStore, local_store
from ..services.offline_sync import SyncEngine, sync_engine


def get_store() -> LocalRecordStore:
    return local_store


def get_sync_engine() -> SyncEngine:
    return sync_engine


def get_derived_state() -> DerivedState:
    return derived_state


def get_activity_service() -> ActivityService:
    return activity_service
