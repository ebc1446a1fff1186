"""
Day-level activity: the active workout lifecycle, completing a workout, logging
a rest day or a weigh-in, undoing today.
Each action is a handful of local writes; nothing here waits on the network.
"""
import logging
import threading
from typing import Dict, List, Optional

from ..core.clock import Clock, system_clock
from ..core.exceptions import NotFound, QuotaExceeded, ValidationError
from ..models.record import Collection
from .derived_state import FreeRestDayQuota
from .local_store import (
    BodyWeight,
    LocalEntity,
    LocalRecordStore,
    RestDayCompletion,
    local_store,
    parse_completed_at,
)

logger = logging.getLogger(__name__)

# Fields a caller may change on a single set
SET_FIELDS = ("reps", "weight", "completed")


def build_exercises(template: List[Dict]) -> List[Dict]:
    """Expand split-day targets into set rows waiting to be filled in."""
    exercises = []
    for item in template or []:
        target_sets = int(item.get("target_sets") or 0)
        if target_sets == 0:
            logger.warning("Exercise %s has no target sets", item.get("exercise_id"))
        exercise = {
            "exercise_id": item.get("exercise_id"),
            "sets": [
                {
                    "set_index": i,
                    "reps": item.get("target_reps") or 0,
                    "weight": 0,
                    "completed": False,
                }
                for i in range(target_sets)
            ],
        }
        if item.get("exercise_name"):
            exercise["exercise_name"] = item["exercise_name"]
        exercises.append(exercise)
    return exercises


class ActivityService:
    def __init__(self, store: Optional[LocalRecordStore] = None, clock: Optional[Clock] = None):
        self.store = store or local_store
        self.clock = clock or system_clock
        self.free_rest_day = FreeRestDayQuota(self.store, self.clock)
        # One active workout per user; start/finish must not interleave
        self._active_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Active workout
    # ------------------------------------------------------------------

    def active_workout(self, user_id: str) -> Optional[LocalEntity]:
        for entity in self.store.list(Collection.ACTIVE_WORKOUTS):
            if entity.data.get("user_id") == user_id:
                return entity
        return None

    def _require_active(self, user_id: str, workout_id: str) -> LocalEntity:
        active = self.active_workout(user_id)
        if active is None or active.id != workout_id:
            raise NotFound(Collection.ACTIVE_WORKOUTS, workout_id)
        return active

    def start_workout(
        self,
        user_id: str,
        split_id: Optional[str] = None,
        day_index: Optional[int] = None,
        day_name: Optional[str] = None,
        template: Optional[List[Dict]] = None,
    ) -> LocalEntity:
        """
        Begin a workout for a split day. If the user already has one in
        progress that workout is returned unchanged.
        """
        with self._active_lock:
            existing = self.active_workout(user_id)
            if existing is not None:
                return existing
            workout = self.store.create(
                Collection.ACTIVE_WORKOUTS,
                {
                    "user_id": user_id,
                    "split_id": split_id,
                    "day_index": day_index,
                    "day_name": day_name,
                    "started_at": self.clock.now().isoformat(),
                    "exercises": build_exercises(template),
                },
            )
        logger.info("Workout %s started for %s", workout.id, user_id)
        return workout

    def update_set(
        self,
        user_id: str,
        workout_id: str,
        exercise_id: str,
        set_index: int,
        changes: Dict,
    ) -> LocalEntity:
        with self._active_lock:
            active = self._require_active(user_id, workout_id)
            exercises = active.data.get("exercises") or []
            exercise = next((e for e in exercises if e.get("exercise_id") == exercise_id), None)
            if exercise is None:
                raise ValidationError(f"Exercise {exercise_id} not found in workout")
            sets = exercise.get("sets") or []
            if not 0 <= set_index < len(sets):
                raise ValidationError(f"Set {set_index} not found for exercise {exercise_id}")
            allowed = {k: v for k, v in changes.items() if k in SET_FIELDS}
            sets[set_index] = {**sets[set_index], **allowed}
            return self.store.update(Collection.ACTIVE_WORKOUTS, workout_id, {"exercises": exercises})

    def cancel_workout(self, user_id: str, workout_id: str) -> bool:
        """Abandon the active workout without keeping it. Unknown ids are ignored."""
        with self._active_lock:
            active = self.active_workout(user_id)
            if active is None or active.id != workout_id:
                return False
            self.store.delete(Collection.ACTIVE_WORKOUTS, workout_id)
        logger.info("Workout %s cancelled", workout_id)
        return True

    def finish_workout(self, user_id: str, workout_id: str, notes: Optional[str] = None) -> LocalEntity:
        """Move the active workout into the completed sessions, ready to sync."""
        with self._active_lock:
            active = self._require_active(user_id, workout_id)
            data = {k: v for k, v in active.data.items() if k != "user_id"}
            if notes is not None:
                data["notes"] = notes
            session = self.complete_session(user_id, data)
            self.store.delete(Collection.ACTIVE_WORKOUTS, workout_id)
        return session

    # ------------------------------------------------------------------
    # Completed sessions
    # ------------------------------------------------------------------

    def complete_session(self, user_id: str, session: Dict) -> LocalEntity:
        """Store a finished workout session and mark today as trained."""
        now = self.clock.now()
        data = {**session, "user_id": user_id}
        data.setdefault("completed_at", now.isoformat())
        entity = self.store.create(Collection.WORKOUT_SESSIONS, data)

        # Training replaces a free rest day logged earlier today
        marker = self.store.calendar(user_id).get(now.date().isoformat())
        if marker is not None and marker.used_free_rest_day:
            self.free_rest_day.revoke_if_used_today(now)
        self.store.mark_day(user_id, now.date(), is_rest_day=False)
        return entity

    def todays_completed_workout(
        self, user_id: str, split_id: Optional[str], day_index: Optional[int]
    ) -> Optional[LocalEntity]:
        """The session completed today for this split day, synced or not."""
        today = self.clock.today()
        for entity in reversed(self.store.list(Collection.WORKOUT_SESSIONS)):
            data = entity.data
            if data.get("user_id") != user_id:
                continue
            if data.get("split_id") != split_id or data.get("day_index") != day_index:
                continue
            completed_at = parse_completed_at(data.get("completed_at"))
            if completed_at is not None and completed_at.date() == today:
                return entity
        return None

    # ------------------------------------------------------------------
    # Rest days, weigh-ins, undo
    # ------------------------------------------------------------------

    def log_rest_day(
        self,
        user_id: str,
        activities: Optional[List[str]] = None,
        caption: Optional[str] = None,
        use_free_day: bool = False,
    ) -> RestDayCompletion:
        now = self.clock.now()
        if use_free_day:
            if not self.free_rest_day.is_available(now):
                raise QuotaExceeded("Free rest day already used this week", limit=1)
            self.free_rest_day.consume(now)

        completion = self.store.append_rest_day(
            user_id,
            RestDayCompletion(date=now, activities=list(activities or []), caption=caption),
        )
        self.store.mark_day(user_id, now.date(), is_rest_day=True, used_free_rest_day=use_free_day)
        logger.info("Rest day logged for %s (free day: %s)", user_id, use_free_day)
        return completion

    def log_body_weight(self, user_id: str, weight: float) -> BodyWeight:
        return self.store.record_body_weight(user_id, weight, self.clock.today())

    def undo_today(self, user_id: str) -> bool:
        """Remove today's marker. Past days are final."""
        today = self.clock.today()
        removed = self.store.unmark_day(user_id, today)
        self.free_rest_day.revoke_if_used_today(self.clock.now())
        return removed


activity_service = ActivityService()
