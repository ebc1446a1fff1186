"""Tests for the local record store: CRUD, saved-workout limits, calendar, log and scalars."""
from datetime import date, datetime, timedelta

import pytest

from gymsync.core.exceptions import NotFound, QuotaExceeded, TooManyExercises, ValidationError
from gymsync.models.record import Collection, RecordSyncStatus
from gymsync.services.local_store import LocalRecordStore, RestDayCompletion

SAVED = Collection.SAVED_WORKOUTS


def _exercises(n):
    return [{"exercise_id": f"ex-{i}", "target_sets": 3, "target_reps": 10} for i in range(n)]


class TestCrud:
    def test_create_and_get(self, store):
        created = store.create(SAVED, {"name": "Leg Day", "exercises": _exercises(2)})
        fetched = store.get(SAVED, created.id)
        assert fetched.id == created.id
        assert fetched.data["name"] == "Leg Day"
        assert len(fetched.data["exercises"]) == 2

    def test_saved_workout_defaults(self, store):
        workout = store.create(SAVED, {"name": "Quick"})
        assert workout.data["emoji"] == "💪"
        assert workout.data["description"] is None
        assert workout.data["workout_type"] is None
        assert workout.data["exercises"] == []

    def test_saved_workout_requires_name(self, store):
        with pytest.raises(ValidationError):
            store.create(SAVED, {"name": "   "})

    def test_list_preserves_insertion_order(self, store):
        names = ["A", "B", "C"]
        for name in names:
            store.create(SAVED, {"name": name})
        assert [w.data["name"] for w in store.list(SAVED)] == names

    def test_caller_supplied_id_is_ignored(self, store):
        workout = store.create(SAVED, {"id": "mine", "name": "X"})
        assert workout.id != "mine"
        assert "id" not in workout.data

    def test_get_missing_raises(self, store):
        with pytest.raises(NotFound):
            store.get(SAVED, "does-not-exist")

    def test_update_merges_and_bumps_version(self, store):
        workout = store.create(SAVED, {"name": "Old", "emoji": "🏋️"})
        updated = store.update(SAVED, workout.id, {"name": "New"})
        assert updated.data["name"] == "New"
        assert updated.data["emoji"] == "🏋️"
        assert updated.version == workout.version + 1

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFound):
            store.update(SAVED, "nope", {"name": "x"})

    def test_delete_is_idempotent(self, store):
        workout = store.create(SAVED, {"name": "Temp"})
        assert store.delete(SAVED, workout.id) is True
        assert store.delete(SAVED, workout.id) is False
        with pytest.raises(NotFound):
            store.get(SAVED, workout.id)

    def test_unknown_collection_rejected(self, store):
        with pytest.raises(ValueError):
            store.create("bogus", {})


class TestSavedWorkoutLimits:
    def test_twenty_one_exercises_rejected(self, store):
        with pytest.raises(TooManyExercises):
            store.create(SAVED, {"name": "Huge", "exercises": _exercises(21)})
        assert store.count(SAVED) == 0

    def test_twenty_exercises_allowed(self, store):
        workout = store.create(SAVED, {"name": "Big", "exercises": _exercises(20)})
        assert len(workout.data["exercises"]) == 20

    def test_eleventh_workout_rejected(self, store):
        for i in range(10):
            store.create(SAVED, {"name": f"W{i}"})
        with pytest.raises(QuotaExceeded):
            store.create(SAVED, {"name": "W10"})
        assert store.count(SAVED) == 10

    def test_delete_frees_quota(self, store):
        ids = [store.create(SAVED, {"name": f"W{i}"}).id for i in range(10)]
        store.delete(SAVED, ids[0])
        store.create(SAVED, {"name": "Replacement"})
        assert store.count(SAVED) == 10

    def test_update_revalidates_exercise_bound(self, store):
        workout = store.create(SAVED, {"name": "W", "exercises": _exercises(3)})
        with pytest.raises(TooManyExercises):
            store.update(SAVED, workout.id, {"exercises": _exercises(21)})
        assert len(store.get(SAVED, workout.id).data["exercises"]) == 3

    def test_mixed_sequence_never_exceeds_bounds(self, store):
        ids = []
        for i in range(14):
            try:
                ids.append(store.create(SAVED, {"name": f"W{i}", "exercises": _exercises(i + 10)}).id)
            except (QuotaExceeded, TooManyExercises):
                pass
            if i % 4 == 3 and ids:
                store.delete(SAVED, ids.pop(0))
        for workout_id in ids:
            try:
                store.update(SAVED, workout_id, {"exercises": _exercises(25)})
            except TooManyExercises:
                pass
        workouts = store.list(SAVED)
        assert len(workouts) <= 10
        assert all(len(w.data["exercises"]) <= 20 for w in workouts)

    def test_limits_do_not_apply_to_other_collections(self, store):
        for i in range(12):
            store.create(Collection.CUSTOM_EXERCISES, {"name": f"Custom {i}"})
        assert store.count(Collection.CUSTOM_EXERCISES) == 12


class TestSyncMetadata:
    def test_new_record_is_pending(self, store):
        record = store.create(Collection.WORKOUT_SESSIONS, {"day_name": "Push"})
        assert record.sync_status == RecordSyncStatus.PENDING
        assert record.has_unsynced_changes

    def test_mark_failed_keeps_record(self, store):
        record = store.create(Collection.WORKOUT_SESSIONS, {"day_name": "Push"})
        store.mark_failed(Collection.WORKOUT_SESSIONS, record.id, "Network timeout")
        store.mark_failed(Collection.WORKOUT_SESSIONS, record.id, "Network timeout")
        failed = store.get(Collection.WORKOUT_SESSIONS, record.id)
        assert failed.sync_status == RecordSyncStatus.FAILED
        assert failed.sync_attempts == 2
        assert failed.last_sync_error == "Network timeout"

    def test_mark_synced_with_stale_version_stays_pending(self, store):
        record = store.create(Collection.WORKOUT_SESSIONS, {"day_name": "Push"})
        store.update(Collection.WORKOUT_SESSIONS, record.id, {"notes": "edited"})
        store.mark_synced(Collection.WORKOUT_SESSIONS, record.id, record.version)
        current = store.get(Collection.WORKOUT_SESSIONS, record.id)
        assert current.sync_status == RecordSyncStatus.PENDING
        assert current.has_unsynced_changes


class TestCalendar:
    def test_mark_day_is_idempotent(self, store):
        day = date(2024, 5, 15)
        store.mark_day("u1", day)
        store.mark_day("u1", day)
        calendar = store.calendar("u1")
        assert list(calendar) == ["2024-05-15"]
        assert calendar["2024-05-15"].is_rest_day is False

    def test_remark_replaces_marker(self, store):
        day = date(2024, 5, 15)
        store.mark_day("u1", day)
        store.mark_day("u1", day, is_rest_day=True, used_free_rest_day=True)
        marker = store.calendar("u1")["2024-05-15"]
        assert marker.is_rest_day and marker.used_free_rest_day

    def test_markers_are_per_user(self, store):
        store.mark_day("u1", date(2024, 5, 15))
        assert store.calendar("u2") == {}

    def test_unmark_day(self, store):
        store.mark_day("u1", date(2024, 5, 15))
        assert store.unmark_day("u1", date(2024, 5, 15)) is True
        assert store.unmark_day("u1", date(2024, 5, 15)) is False

    def test_backfill_never_overwrites_today_or_existing(self, store):
        today = date(2024, 5, 15)
        store.mark_day("u1", date(2024, 5, 13), is_rest_day=True)
        sessions = [
            {"completedAt": "2024-05-15T07:00:00", "exercises": [{}]},
            {"completed_at": "2024-05-13T07:00:00", "exercises": [{}]},
            {"completed_at": "2024-05-12T07:00:00", "exercises": [], "day_name": "Rest Day"},
            {"completed_at": "2024-05-11T07:00:00", "type": "workout", "exercises": [{}]},
            {"exercises": [{}]},
        ]
        written = store.backfill_calendar("u1", sessions, today)
        calendar = store.calendar("u1")
        assert written == 2
        assert "2024-05-15" not in calendar
        assert calendar["2024-05-13"].is_rest_day is True
        assert calendar["2024-05-12"].is_rest_day is True
        assert calendar["2024-05-11"].is_rest_day is False


class TestRestDayLogAndScalars:
    def test_rest_day_log_is_append_only(self, store):
        store.append_rest_day("u1", RestDayCompletion(datetime(2024, 5, 14, 8), ["yoga"], "Stretch"))
        store.append_rest_day("u1", RestDayCompletion(datetime(2024, 5, 15, 8), ["walk"], None))
        log = store.list_rest_days("u1")
        assert [c.activities for c in log] == [["yoga"], ["walk"]]
        assert log[0].caption == "Stretch"

    def test_scalar_roundtrip(self, store):
        assert store.get_scalar("k") is None
        store.set_scalar("k", "one")
        store.set_scalar("k", "two")
        assert store.get_scalar("k") == "two"
        store.clear_scalar("k")
        assert store.get_scalar("k") is None


class TestSavedWorkoutUpdates:
    def test_null_emoji_falls_back_to_default(self, store):
        workout = store.create(SAVED, {"name": "Pull", "emoji": "🏋️"})
        updated = store.update(SAVED, workout.id, {"emoji": None})
        assert updated.data["emoji"] == "💪"
        assert store.get(SAVED, workout.id).data["name"] == "Pull"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_blank_name_rejected(self, store, name):
        workout = store.create(SAVED, {"name": "Pull"})
        with pytest.raises(ValidationError):
            store.update(SAVED, workout.id, {"name": name})
        stored = store.get(SAVED, workout.id)
        assert stored.data["name"] == "Pull"
        assert stored.version == 1

    def test_null_exercises_become_empty_list(self, store):
        workout = store.create(SAVED, {"name": "Pull", "exercises": _exercises(2)})
        assert store.update(SAVED, workout.id, {"exercises": None}).data["exercises"] == []

    def test_explicit_zero_limit_is_honoured(self, session_factory, clock):
        locked = LocalRecordStore(session_factory=session_factory, clock=clock, max_saved_workouts=0)
        with pytest.raises(QuotaExceeded):
            locked.create(SAVED, {"name": "Anything"})


class TestCalendarRetention:
    def test_backfill_skips_malformed_completion_times(self, store):
        sessions = [
            {"completedAt": "not-a-date", "exercises": [{}]},
            {"completedAt": 10 ** 20, "exercises": [{}]},
            {"completedAt": "2024-05-10T18:00:00", "exercises": [{}]},
        ]
        assert store.backfill_calendar("u1", sessions, date(2024, 5, 15)) == 1
        assert list(store.calendar("u1")) == ["2024-05-10"]

    def test_markers_outside_window_are_hidden_and_pruned(self, session_factory, clock):
        store = LocalRecordStore(session_factory=session_factory, clock=clock, calendar_retention_days=60)
        today = clock.today()
        store.mark_day("u1", today - timedelta(days=61))
        store.mark_day("u1", today - timedelta(days=60))
        assert set(store.calendar("u1")) == {(today - timedelta(days=60)).isoformat()}

        clock.advance(24 * 3600)
        store.mark_day("u1", clock.today())
        assert set(store.calendar("u1")) == {clock.today().isoformat()}

    def test_backfill_ignores_days_before_window(self, session_factory, clock):
        store = LocalRecordStore(session_factory=session_factory, clock=clock, calendar_retention_days=60)
        sessions = [
            {"completedAt": "2024-01-01T10:00:00", "exercises": [{}]},
            {"completedAt": "2024-05-01T10:00:00", "exercises": [{}]},
        ]
        assert store.backfill_calendar("u1", sessions, clock.today()) == 1


class TestBodyWeightLog:
    def test_same_day_entry_replaces_previous(self, store):
        store.record_body_weight("u1", 180.5)
        store.record_body_weight("u1", 179.0)
        log = store.body_weight_log("u1")
        assert [(e.day, e.weight) for e in log] == [("2024-05-15", 179.0)]

    def test_log_sorted_by_day(self, store):
        store.record_body_weight("u1", 178, day=date(2024, 5, 15))
        store.record_body_weight("u1", 181, day=date(2024, 5, 1))
        store.record_body_weight("u2", 150, day=date(2024, 5, 3))
        assert [e.day for e in store.body_weight_log("u1")] == ["2024-05-01", "2024-05-15"]

    @pytest.mark.parametrize("weight", [0, -5, None])
    def test_non_positive_weight_rejected(self, store, weight):
        with pytest.raises(ValidationError):
            store.record_body_weight("u1", weight)
        assert store.body_weight_log("u1") == []

    def test_clear(self, store):
        store.record_body_weight("u1", 180)
        assert store.clear_body_weight_log("u1") == 1
        assert store.body_weight_log("u1") == []
