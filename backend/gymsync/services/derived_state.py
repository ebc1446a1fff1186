"""
Streak and weekly free-rest-day quota.
Both are computed from the local store only, so they are correct offline and
reflect a local write immediately.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from ..core.clock import Clock, system_clock
from .local_store import LocalRecordStore, local_store

logger = logging.getLogger(__name__)

FREE_REST_DAY_KEY = "free_rest_day_last_used"


def start_of_week(day: date) -> date:
    """Sunday of the week containing ``day``."""
    # date.weekday(): Monday=0 ... Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


class StreakCalculator:
    def __init__(self, store: LocalRecordStore, clock: Clock):
        self.store = store
        self.clock = clock

    def current_streak(self, user_id: str, today: Optional[date] = None) -> int:
        """
        Count consecutive marked days ending today, or yesterday when today
        has not been marked yet. Trained and rested days both count; the first
        fully-missed day ends the walk.
        """
        today = today or self.clock.today()
        marked = self.store.calendar(user_id)
        if not marked:
            return 0

        cursor = today if today.isoformat() in marked else today - timedelta(days=1)
        streak = 0
        while cursor.isoformat() in marked:
            streak += 1
            cursor -= timedelta(days=1)
        return streak


class FreeRestDayQuota:
    """One free rest day per calendar week, weeks starting Sunday 00:00 local time."""

    def __init__(self, store: LocalRecordStore, clock: Clock):
        self.store = store
        self.clock = clock

    def _today(self, now: Optional[datetime]) -> date:
        return (now or self.clock.now()).date()

    def last_used(self) -> Optional[date]:
        value = self.store.get_scalar(FREE_REST_DAY_KEY)
        return date.fromisoformat(value) if value else None

    def is_available(self, now: Optional[datetime] = None) -> bool:
        last_used = self.last_used()
        if last_used is None:
            return True
        return start_of_week(last_used) < start_of_week(self._today(now))

    def consume(self, now: Optional[datetime] = None) -> date:
        today = self._today(now)
        self.store.set_scalar(FREE_REST_DAY_KEY, today.isoformat())
        logger.info("Free rest day used on %s", today)
        return today

    def revoke_if_used_today(self, now: Optional[datetime] = None) -> bool:
        """Clear the usage only when it was recorded today."""
        if self.last_used() != self._today(now):
            return False
        self.store.clear_scalar(FREE_REST_DAY_KEY)
        logger.info("Free rest day usage revoked")
        return True


class DerivedState:
    """Read-side facade used by the application layer."""

    def __init__(self, store: Optional[LocalRecordStore] = None, clock: Optional[Clock] = None):
        store = store or local_store
        clock = clock or system_clock
        self.streaks = StreakCalculator(store, clock)
        self.free_rest_day = FreeRestDayQuota(store, clock)

    def current_streak(self, user_id: str) -> int:
        return self.streaks.current_streak(user_id)

    def is_free_rest_day_available(self) -> bool:
        return self.free_rest_day.is_available()

    def consume_free_rest_day(self) -> date:
        return self.free_rest_day.consume()

    def revoke_free_rest_day_if_used_today(self) -> bool:
        return self.free_rest_day.revoke_if_used_today()


derived_state = DerivedState()
