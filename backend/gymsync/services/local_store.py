"""
Local Record Store.
Durable, local-first persistence for every entity the device owns: saved workouts,
workout sessions (active and completed), custom exercises, calendar markers, the
rest-day and body-weight logs and scalar settings. Writes land here first and are
usable immediately; the sync engine only reads and requests mutations through
this interface.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock, system_clock
from ..core.config import settings
from ..core.exceptions import NotFound, QuotaExceeded, TooManyExercises, ValidationError
from ..models.base import SessionLocal, generate_uuid
from ..models.body_weight import BodyWeightEntry
from ..models.calendar import CalendarMarker, RestDayLogEntry
from ..models.record import Collection, KeyValue, LocalRecord, RecordSyncStatus

logger = logging.getLogger(__name__)

DEFAULT_WORKOUT_EMOJI = "💪"


@dataclass
class LocalEntity:
    """A record as seen by callers of the store."""
    id: str
    collection: str
    data: Dict
    created_at: datetime
    updated_at: datetime
    version: int = 1
    synced_version: int = 0
    sync_status: str = RecordSyncStatus.PENDING
    sync_attempts: int = 0
    last_sync_error: Optional[str] = None

    @property
    def has_unsynced_changes(self) -> bool:
        return self.version > self.synced_version

    def to_dict(self) -> Dict:
        return {
            **self.data,
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "sync_status": self.sync_status,
        }


@dataclass
class DayMarker:
    day: str
    is_rest_day: bool = False
    used_free_rest_day: bool = False
    recorded_at: Optional[datetime] = None


@dataclass
class RestDayCompletion:
    date: datetime
    activities: List[str] = field(default_factory=list)
    caption: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "date": self.date.isoformat(),
            "activities": list(self.activities),
            "caption": self.caption,
        }


@dataclass
class BodyWeight:
    day: str
    weight: float
    recorded_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "date": self.day,
            "weight": self.weight,
            "timestamp": self.recorded_at.isoformat() if self.recorded_at else None,
        }


def _to_entity(row: LocalRecord) -> LocalEntity:
    return LocalEntity(
        id=row.record_id,
        collection=row.collection,
        data=dict(row.data or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
        synced_version=row.synced_version,
        sync_status=row.sync_status,
        sync_attempts=row.sync_attempts,
        last_sync_error=row.last_sync_error,
    )


def parse_completed_at(value) -> Optional[datetime]:
    """Accept a datetime, an ISO-8601 string or epoch milliseconds."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        # Convert to the device calendar before taking the date
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class LocalRecordStore:
    """
    Collection/id keyed record store backed by SQLAlchemy.

    Every operation opens its own short-lived session so callers never hold
    a transaction. Writes to the same (collection, id) are serialized by a
    per-key lock; creates in one collection share a lock so quota checks
    cannot interleave.
    """

    def __init__(
        self,
        session_factory=None,
        clock: Optional[Clock] = None,
        max_saved_workouts: Optional[int] = None,
        max_exercises_per_workout: Optional[int] = None,
        calendar_retention_days: Optional[int] = None,
    ):
        self._session_factory = session_factory or SessionLocal
        self._clock = clock or system_clock
        self.max_saved_workouts = (
            settings.MAX_SAVED_WORKOUTS if max_saved_workouts is None else max_saved_workouts
        )
        self.max_exercises_per_workout = (
            settings.MAX_EXERCISES_PER_WORKOUT
            if max_exercises_per_workout is None
            else max_exercises_per_workout
        )
        self.calendar_retention_days = (
            settings.CALENDAR_RETENTION_DAYS
            if calendar_retention_days is None
            else calendar_retention_days
        )
        self._locks: Dict[tuple, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _session(self):
        db: Session = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _lock(self, *key) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @staticmethod
    def _find(db: Session, collection: str, record_id: str) -> Optional[LocalRecord]:
        return (
            db.query(LocalRecord)
            .filter(LocalRecord.collection == collection, LocalRecord.record_id == record_id)
            .first()
        )

    def _validate_exercises(self, exercises) -> None:
        count = len(exercises or [])
        if count > self.max_exercises_per_workout:
            raise TooManyExercises(count, self.max_exercises_per_workout)

    @staticmethod
    def _validate_name(name) -> None:
        if not (name or "").strip():
            raise ValidationError("Saved workout name is required")

    def _prepare_saved_update(self, changes: Dict) -> Dict:
        if "name" in changes:
            self._validate_name(changes["name"])
        if "emoji" in changes and not changes["emoji"]:
            changes["emoji"] = DEFAULT_WORKOUT_EMOJI
        if "exercises" in changes:
            changes["exercises"] = list(changes["exercises"] or [])
            self._validate_exercises(changes["exercises"])
        return changes

    def _prepare_saved_workout(self, db: Session, data: Dict) -> Dict:
        existing = db.query(LocalRecord).filter(
            LocalRecord.collection == Collection.SAVED_WORKOUTS
        ).count()
        if existing >= self.max_saved_workouts:
            raise QuotaExceeded(
                f"You can only have up to {self.max_saved_workouts} saved workouts. "
                "Please delete one to create a new one.",
                limit=self.max_saved_workouts,
            )
        self._validate_exercises(data.get("exercises"))
        self._validate_name(data.get("name"))
        return {
            "name": data["name"],
            "description": data.get("description") or None,
            "emoji": data.get("emoji") or DEFAULT_WORKOUT_EMOJI,
            "workout_type": data.get("workout_type") or None,
            "exercises": list(data.get("exercises") or []),
        }

    # ------------------------------------------------------------------
    # Entity CRUD
    # ------------------------------------------------------------------

    def get(self, collection: str, record_id: str) -> LocalEntity:
        with self._session() as db:
            row = self._find(db, collection, record_id)
            if row is None:
                raise NotFound(collection, record_id)
            return _to_entity(row)

    def list(self, collection: str) -> List[LocalEntity]:
        """All records of a collection in insertion order."""
        with self._session() as db:
            rows = (
                db.query(LocalRecord)
                .filter(LocalRecord.collection == collection)
                .order_by(LocalRecord.seq)
                .all()
            )
            return [_to_entity(r) for r in rows]

    def count(self, collection: str) -> int:
        with self._session() as db:
            return db.query(LocalRecord).filter(LocalRecord.collection == collection).count()

    def create(self, collection: str, data: Dict) -> LocalEntity:
        """Store a new record under a freshly minted local id."""
        if collection not in Collection.ALL:
            raise ValueError(f"Unknown collection: {collection}")
        payload = {k: v for k, v in data.items() if k != "id"}

        with self._lock(collection, "*"):
            with self._session() as db:
                if collection == Collection.SAVED_WORKOUTS:
                    payload = self._prepare_saved_workout(db, payload)
                row = LocalRecord(
                    collection=collection,
                    record_id=generate_uuid(),
                    data=payload,
                )
                db.add(row)
                db.flush()
                db.refresh(row)
                entity = _to_entity(row)

        logger.info("Created %s record %s", collection, entity.id)
        return entity

    def update(self, collection: str, record_id: str, partial: Dict) -> LocalEntity:
        changes = {k: v for k, v in partial.items() if k != "id"}
        if collection == Collection.SAVED_WORKOUTS:
            changes = self._prepare_saved_update(changes)

        with self._lock(collection, record_id):
            with self._session() as db:
                row = self._find(db, collection, record_id)
                if row is None:
                    raise NotFound(collection, record_id)
                # Reassign so the JSON column is flagged dirty
                row.data = {**(row.data or {}), **changes}
                row.version = row.version + 1
                db.flush()
                db.refresh(row)
                return _to_entity(row)

    def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record. Deleting an unknown id is a successful no-op."""
        with self._lock(collection, record_id):
            with self._session() as db:
                row = self._find(db, collection, record_id)
                if row is None:
                    return False
                db.delete(row)
        logger.info("Deleted %s record %s", collection, record_id)
        return True

    # ------------------------------------------------------------------
    # Sync metadata
    # ------------------------------------------------------------------

    def mark_syncing(self, collection: str, record_id: str) -> None:
        with self._lock(collection, record_id):
            with self._session() as db:
                row = self._find(db, collection, record_id)
                if row is not None:
                    row.sync_status = RecordSyncStatus.SYNCING

    def mark_synced(self, collection: str, record_id: str, version: int) -> None:
        """Record that the remote acknowledged ``version`` of the record."""
        with self._lock(collection, record_id):
            with self._session() as db:
                row = self._find(db, collection, record_id)
                if row is None:
                    return
                row.synced_version = max(row.synced_version, version)
                row.sync_status = (
                    RecordSyncStatus.SYNCED
                    if row.synced_version >= row.version
                    else RecordSyncStatus.PENDING
                )
                row.last_sync_error = None

    def mark_failed(self, collection: str, record_id: str, error: str) -> None:
        with self._lock(collection, record_id):
            with self._session() as db:
                row = self._find(db, collection, record_id)
                if row is None:
                    return
                row.sync_status = RecordSyncStatus.FAILED
                row.sync_attempts = row.sync_attempts + 1
                row.last_sync_error = error

    # ------------------------------------------------------------------
    # Calendar markers
    # ------------------------------------------------------------------

    def mark_day(
        self,
        user_id: str,
        day: date,
        is_rest_day: bool = False,
        used_free_rest_day: bool = False,
    ) -> DayMarker:
        """Write the marker for ``day``; re-marking a day replaces it."""
        day_str = day.isoformat()
        with self._lock("calendar", user_id, day_str):
            with self._session() as db:
                marker = (
                    db.query(CalendarMarker)
                    .filter(CalendarMarker.user_id == user_id, CalendarMarker.day == day_str)
                    .first()
                )
                if marker is None:
                    marker = CalendarMarker(user_id=user_id, day=day_str)
                    db.add(marker)
                marker.is_rest_day = is_rest_day
                marker.used_free_rest_day = used_free_rest_day
                marker.recorded_at = self._clock.now()
                recorded_at = marker.recorded_at
                db.flush()
                db.query(CalendarMarker).filter(
                    CalendarMarker.user_id == user_id,
                    CalendarMarker.day < self._calendar_cutoff(),
                ).delete()
                return DayMarker(day_str, is_rest_day, used_free_rest_day, recorded_at)

    def unmark_day(self, user_id: str, day: date) -> bool:
        day_str = day.isoformat()
        with self._lock("calendar", user_id, day_str):
            with self._session() as db:
                deleted = (
                    db.query(CalendarMarker)
                    .filter(CalendarMarker.user_id == user_id, CalendarMarker.day == day_str)
                    .delete()
                )
                return deleted > 0

    def _calendar_cutoff(self) -> str:
        """Oldest day still kept, as YYYY-MM-DD."""
        return (self._clock.today() - timedelta(days=self.calendar_retention_days)).isoformat()

    def calendar(self, user_id: str) -> Dict[str, DayMarker]:
        """Markers inside the retention window, keyed by YYYY-MM-DD."""
        with self._session() as db:
            markers = (
                db.query(CalendarMarker)
                .filter(
                    CalendarMarker.user_id == user_id,
                    CalendarMarker.day >= self._calendar_cutoff(),
                )
                .all()
            )
            return {
                m.day: DayMarker(m.day, m.is_rest_day, m.used_free_rest_day, m.recorded_at)
                for m in markers
            }

    def backfill_calendar(self, user_id: str, sessions: Iterable[Dict], today: date) -> int:
        """
        Fill historical markers from remote workout sessions.
        Existing markers and today's marker are never overwritten.
        """
        known = self.calendar(user_id)
        cutoff = self._calendar_cutoff()
        written = 0
        for session in sessions:
            raw = session.get("completed_at") or session.get("completedAt")
            try:
                completed_at = parse_completed_at(raw)
            except (ValueError, OverflowError, OSError) as exc:
                logger.warning("Skipping remote session with bad completion time %r: %s", raw, exc)
                continue
            if completed_at is None:
                continue
            day = completed_at.date()
            if day == today or day.isoformat() in known or day.isoformat() < cutoff:
                continue
            is_rest_day = session.get("type") == "rest_day" or (
                not session.get("exercises")
                and (session.get("day_name") or session.get("dayName")) == "Rest Day"
            )
            known[day.isoformat()] = self.mark_day(user_id, day, is_rest_day=is_rest_day)
            written += 1
        if written:
            logger.info("Backfilled %d calendar days for user %s", written, user_id)
        return written

    # ------------------------------------------------------------------
    # Rest-day log (append-only)
    # ------------------------------------------------------------------

    def append_rest_day(self, user_id: str, completion: RestDayCompletion) -> RestDayCompletion:
        with self._session() as db:
            db.add(
                RestDayLogEntry(
                    user_id=user_id,
                    date=completion.date,
                    activities=list(completion.activities),
                    caption=completion.caption,
                )
            )
        return completion

    def list_rest_days(self, user_id: str) -> List[RestDayCompletion]:
        with self._session() as db:
            rows = (
                db.query(RestDayLogEntry)
                .filter(RestDayLogEntry.user_id == user_id)
                .order_by(RestDayLogEntry.seq)
                .all()
            )
            return [RestDayCompletion(r.date, list(r.activities or []), r.caption) for r in rows]

    # ------------------------------------------------------------------
    # Body weight log
    # ------------------------------------------------------------------

    def record_body_weight(self, user_id: str, weight: float, day: Optional[date] = None) -> BodyWeight:
        """Store today's weigh-in (or ``day``'s), replacing one already logged that day."""
        if weight is None or weight <= 0:
            raise ValidationError("Body weight must be a positive number")
        day_str = (day or self._clock.today()).isoformat()
        recorded_at = self._clock.now()
        with self._lock("body_weight", user_id, day_str):
            with self._session() as db:
                entry = (
                    db.query(BodyWeightEntry)
                    .filter(BodyWeightEntry.user_id == user_id, BodyWeightEntry.day == day_str)
                    .first()
                )
                if entry is None:
                    entry = BodyWeightEntry(user_id=user_id, day=day_str)
                    db.add(entry)
                entry.weight = float(weight)
                entry.recorded_at = recorded_at
        return BodyWeight(day_str, float(weight), recorded_at)

    def body_weight_log(self, user_id: str) -> List[BodyWeight]:
        """All weigh-ins, oldest day first."""
        with self._session() as db:
            rows = (
                db.query(BodyWeightEntry)
                .filter(BodyWeightEntry.user_id == user_id)
                .order_by(BodyWeightEntry.day)
                .all()
            )
            return [BodyWeight(r.day, r.weight, r.recorded_at) for r in rows]

    def clear_body_weight_log(self, user_id: str) -> int:
        with self._session() as db:
            return (
                db.query(BodyWeightEntry)
                .filter(BodyWeightEntry.user_id == user_id)
                .delete()
            )

    # ------------------------------------------------------------------
    # Scalars
    # ------------------------------------------------------------------

    def get_scalar(self, key: str) -> Optional[str]:
        with self._session() as db:
            entry = db.query(KeyValue).filter(KeyValue.key == key).first()
            return entry.value if entry else None

    def set_scalar(self, key: str, value: str) -> None:
        with self._lock("scalar", key):
            with self._session() as db:
                entry = db.query(KeyValue).filter(KeyValue.key == key).first()
                if entry is None:
                    db.add(KeyValue(key=key, value=value))
                else:
                    entry.value = value

    def clear_scalar(self, key: str) -> None:
        with self._lock("scalar", key):
            with self._session() as db:
                db.query(KeyValue).filter(KeyValue.key == key).delete()


local_store = LocalRecordStore()
