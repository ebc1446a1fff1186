from sqlalchemy import Column, String, Text, Integer, JSON, UniqueConstraint
from .base import Base, TimestampMixin


class Collection:
    SAVED_WORKOUTS = "saved_workouts"
    WORKOUT_SESSIONS = "workout_sessions"
    CUSTOM_EXERCISES = "custom_exercises"
    # In-progress sessions; moved to WORKOUT_SESSIONS on completion
    ACTIVE_WORKOUTS = "active_workouts"

    ALL = [SAVED_WORKOUTS, WORKOUT_SESSIONS, CUSTOM_EXERCISES, ACTIVE_WORKOUTS]
    # Collections pushed to the remote system of record
    SYNCABLE = [WORKOUT_SESSIONS, CUSTOM_EXERCISES]


class RecordSyncStatus:
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class LocalRecord(Base, TimestampMixin):
    __tablename__ = "local_records"
    __table_args__ = (UniqueConstraint("collection", "record_id", name="uq_collection_record"),)

    # Autoincrement key doubles as insertion order
    seq = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(50), nullable=False, index=True)
    record_id = Column(String(64), nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)

    version = Column(Integer, nullable=False, default=1)
    synced_version = Column(Integer, nullable=False, default=0)
    sync_status = Column(String(20), nullable=False, default=RecordSyncStatus.PENDING)
    sync_attempts = Column(Integer, nullable=False, default=0)
    last_sync_error = Column(Text, nullable=True)


class KeyValue(Base, TimestampMixin):
    """Scalar settings such as the last free rest day usage."""
    __tablename__ = "key_values"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
