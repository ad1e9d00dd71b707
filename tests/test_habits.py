import asyncio
import datetime as dt

import pytest

from mind_reset.errors import StoreWriteError, ValidationError
from mind_reset.schemas.habit import (
    MINUTES,
    PAGES_READ,
    Habit,
    HabitRecord,
    MetricCategory,
    MetricType,
)
from mind_reset.services.habits import (
    HabitStore,
    mark_done,
    metric_prompt,
    points_for_streak,
    toggled,
    unmark_done,
)
from mind_reset.store import KeyedLock, habit_path, user_path

from conftest import NOW


def _habit(**overrides) -> Habit:
    data = dict(owner_id="u1", title="Reading", start_date=dt.datetime(2026, 9, 5, 8, 0))
    data.update(overrides)
    return Habit(**data)


def _stored(store, habit_id: str, habit: Habit) -> None:
    asyncio.run(store.set(habit_path(habit_id), habit.to_document()))


def _loaded(store, clock, user) -> HabitStore:
    habits = HabitStore(store, user, clock=clock)
    asyncio.run(habits.subscribe("u1"))
    return habits


def test_points_for_streak():
    assert points_for_streak(1) == 2
    assert points_for_streak(6) == 7
    assert points_for_streak(7) == 18
    assert points_for_streak(8) == 9
    assert points_for_streak(30) == 81
    assert points_for_streak(365) == 466


def test_mark_twice_same_day_counts_once():
    habit = mark_done(_habit(), NOW)
    again = mark_done(habit, NOW + dt.timedelta(hours=2), 3)
    assert again.current_streak == 1
    assert len(again.records_on(NOW)) == 2


def test_toggle_twice_restores_counters():
    habit = _habit(current_streak=4, longest_streak=9, last_reset=NOW - dt.timedelta(days=1))
    done = toggled(habit, NOW)
    undone = toggled(done, NOW)
    assert done.current_streak == 5
    assert undone.current_streak == 4
    assert undone.longest_streak == 9
    assert undone.records_on(NOW) == []
    assert undone.last_reset is None


def test_unmark_retracts_new_longest_streak():
    habit = mark_done(_habit(current_streak=3, longest_streak=3), NOW)
    assert habit.longest_streak == 4
    undone = unmark_done(habit, NOW)
    assert (undone.current_streak, undone.longest_streak) == (3, 3)


def test_unmark_never_goes_negative():
    habit = _habit(daily_records=[HabitRecord(date=NOW, value=1)])
    assert unmark_done(habit, NOW).current_streak == 0


def test_subscribe_loads_only_own_habits_newest_first(store, clock, user):
    _stored(store, "h1", _habit(title="Old", start_date=dt.datetime(2026, 9, 1)))
    _stored(store, "h2", _habit(title="New", start_date=dt.datetime(2026, 10, 1)))
    _stored(store, "h3", _habit(owner_id="u2", title="Other"))
    asyncio.run(store.set(habit_path("h4"), {"ownerId": "u1", "title": 5}))

    habits = _loaded(store, clock, user)

    assert [h.id for h in habits.habits] == ["h2", "h1"]
    habits.close()


def test_toggle_reaching_seven_awards_weekly_bonus(store, clock, user):
    _stored(store, "h1", _habit(current_streak=6, longest_streak=6, last_reset=NOW - dt.timedelta(days=1)))
    habits = _loaded(store, clock, user)

    result = asyncio.run(habits.toggle_completion(habits.get("h1"), "u1"))

    assert result.completed
    assert result.points_awarded == 18
    assert result.habit.current_streak == 7
    assert result.habit.weekly_streak_badge
    assert not result.habit.monthly_streak_badge
    profile = asyncio.run(store.get(user_path("u1")))
    assert profile["totalPoints"] == 18
    stored = asyncio.run(store.get(habit_path("h1")))
    assert stored["currentStreak"] == 7
    assert "weeklyStreakBadge" not in stored
    assert habits.local_streaks["h1"] == 7


def test_toggle_off_awards_nothing(store, clock, user):
    _stored(store, "h1", _habit(current_streak=2, longest_streak=2, last_reset=NOW, daily_records=[HabitRecord(date=NOW, value=1)]))
    habits = _loaded(store, clock, user)

    result = asyncio.run(habits.toggle_completion(habits.get("h1"), "u1"))

    assert not result.completed
    assert result.points_awarded == 0
    assert result.habit.current_streak == 1
    assert asyncio.run(store.get(user_path("u1")))["totalPoints"] == 0


def test_failed_write_rolls_back(store, clock, user):
    _stored(store, "h1", _habit(current_streak=2, longest_streak=5, last_reset=NOW - dt.timedelta(days=1)))
    habits = _loaded(store, clock, user)
    before = habits.get("h1")
    seen = []
    habits.on_change(lambda hs: seen.append(hs[0].current_streak))
    store.fail_writes = True

    result = asyncio.run(habits.toggle_completion(before, "u1"))

    assert result is None
    assert seen == [3, 2]
    assert habits.get("h1") == before
    assert habits.local_streaks["h1"] == 2
    assert isinstance(habits.errors.last, StoreWriteError)
    assert habits.errors.message == "Failed to update habit."


def test_concurrent_toggles_apply_in_order(store, clock, user):
    _stored(store, "h1", _habit())
    habits = _loaded(store, clock, user)
    habit = habits.get("h1")

    async def _run():
        return await asyncio.gather(
            habits.toggle_completion(habit, "u1"),
            habits.toggle_completion(habit, "u1"),
        )

    first, second = asyncio.run(_run())
    assert first.completed and not second.completed
    assert habits.get("h1").current_streak == 0


def test_completion_habit_rejects_other_values(store, clock, user):
    _stored(store, "h1", _habit())
    habits = _loaded(store, clock, user)
    with pytest.raises(ValidationError):
        asyncio.run(habits.toggle_completion(habits.get("h1"), "u1", 3))


def test_zero_value_leaves_habit_undone(store, clock, user):
    _stored(store, "h1", _habit(metric_category=MetricCategory.QUANTITY, metric_type=MetricType.predefined(PAGES_READ)))
    habits = _loaded(store, clock, user)

    result = asyncio.run(habits.toggle_completion(habits.get("h1"), "u1", 0))

    assert not result.completed
    assert asyncio.run(store.get(habit_path("h1")))["dailyRecords"] == []


def test_record_value_awards_points_once_per_day(store, clock, user):
    _stored(store, "h1", _habit(metric_category=MetricCategory.QUANTITY, metric_type=MetricType.predefined(PAGES_READ)))
    habits = _loaded(store, clock, user)

    first = asyncio.run(habits.record_value(habits.get("h1"), "u1", 12))
    second = asyncio.run(habits.record_value(habits.get("h1"), "u1", 8))

    assert first.points_awarded == 2
    assert second.points_awarded == 0
    assert second.habit.current_streak == 1
    assert second.habit.record_value_on(NOW) == 12


def test_create_requires_signed_in_owner(store, clock, user):
    habits = HabitStore(store, user, clock=clock)
    with pytest.raises(ValidationError):
        asyncio.run(habits.create(_habit(owner_id="u2")))

    created = asyncio.run(habits.create(_habit()))
    assert created.id
    assert asyncio.run(store.get(habit_path(created.id)))["title"] == "Reading"


def test_delete_drops_habit_and_caches(store, clock, user):
    _stored(store, "h1", _habit(current_streak=3, longest_streak=3))
    habits = _loaded(store, clock, user)

    assert asyncio.run(habits.delete(habits.get("h1")))
    assert habits.get("h1") is None
    assert "h1" not in habits.local_streaks
    assert asyncio.run(store.get(habit_path("h1"))) is None


def test_delete_failure_keeps_state(store, clock, user):
    _stored(store, "h1", _habit())
    habits = _loaded(store, clock, user)
    store.fail_writes = True

    assert not asyncio.run(habits.delete(habits.get("h1")))
    assert habits.get("h1") is not None
    assert habits.errors.last.message_key == "habit.error.delete"


def test_remote_emission_never_lowers_local_streak(store, clock, user):
    _stored(store, "h1", _habit(current_streak=4, longest_streak=4))
    habits = _loaded(store, clock, user)
    _stored(store, "h1", _habit(current_streak=1, longest_streak=4))

    assert habits.get("h1").current_streak == 1
    assert habits.displayed_streaks("h1") == (4, 4)


def test_defaults_seeded_once(store, clock, user):
    habits = _loaded(store, clock, user)

    assert asyncio.run(habits.seed_defaults_if_needed("u1"))
    assert not asyncio.run(habits.seed_defaults_if_needed("u1"))

    titles = sorted(h.title for h in habits.habits)
    assert titles == ["Daily Walk", "Journaling", "Meditation", "Plan Daily Tasks", "Reading"]
    meditation = next(h for h in habits.habits if h.title == "Meditation")
    assert meditation.metric_category is MetricCategory.TIME
    assert meditation.metric_type.name == MINUTES


def test_defaults_skipped_without_user_document(store, clock, user):
    habits = HabitStore(store, user, clock=clock)
    assert not asyncio.run(habits.seed_defaults_if_needed("ghost"))
    assert asyncio.run(store.query("habits")) == []


def test_daily_reset_only_touches_local_view(store, clock, user):
    yesterday = NOW - dt.timedelta(days=1)
    _stored(store, "h1", _habit(daily_records=[HabitRecord(date=yesterday, value=1)]))
    _stored(store, "h2", _habit(title="Walk", daily_records=[HabitRecord(date=NOW, value=2)]))
    habits = _loaded(store, clock, user)

    reset = habits.daily_reset_if_needed()

    assert reset == ["h1"]
    assert habits.today_records["h1"] == []
    assert len(habits.today_records["h2"]) == 1
    assert len(habits.get("h1").daily_records) == 1
    assert len(asyncio.run(store.get(habit_path("h1")))["dailyRecords"]) == 1
    assert habits.completed_today_count() == 1


def test_notes(store, clock, user):
    habits = HabitStore(store, user, clock=clock)

    with pytest.raises(ValidationError):
        asyncio.run(habits.save_note("h1", "   "))

    first = asyncio.run(habits.save_note("h1", "felt good"))
    clock.advance(minutes=5)
    second = asyncio.run(habits.save_note("h1", "felt better"))
    notes = asyncio.run(habits.list_notes("h1"))
    assert [n.id for n in notes] == [second.id, first.id]

    assert asyncio.run(habits.delete_note(first))
    assert [n.note_text for n in asyncio.run(habits.list_notes("h1"))] == ["felt better"]


def test_metric_prompt():
    assert metric_prompt(_habit(metric_type=MetricType.predefined(MINUTES))) == "How many minutes did you meditate today?"
    assert metric_prompt(_habit(metric_type=MetricType.custom("Push-ups"))) == "Enter today's push-ups value:"


def test_failed_seed_reports_store_error_and_can_retry(store, clock, user, monkeypatch):
    habits = _loaded(store, clock, user)
    original_add = store.add
    calls = []

    async def _flaky_add(collection, data):
        calls.append(collection)
        if len(calls) == 3:
            raise StoreWriteError(f"add {collection}")
        return await original_add(collection, data)

    monkeypatch.setattr(store, "add", _flaky_add)

    assert not asyncio.run(habits.seed_defaults_if_needed("u1"))

    assert isinstance(habits.errors.last, StoreWriteError)
    assert habits.errors.last.message_key == "habit.error.seed"
    assert asyncio.run(store.query("habits")) == []
    assert asyncio.run(store.get(user_path("u1")))["defaultHabitsCreated"] is False

    monkeypatch.setattr(store, "add", original_add)
    assert asyncio.run(habits.seed_defaults_if_needed("u1"))
    assert len(asyncio.run(store.query("habits"))) == 5


def test_stores_sharing_locks_serialize_toggles(store, clock, user):
    _stored(store, "h1", _habit())
    locks = KeyedLock()
    first = HabitStore(store, user, clock=clock, locks=locks)
    second = HabitStore(store, user, clock=clock, locks=locks)

    async def _run():
        await first.subscribe("u1")
        await second.subscribe("u1")
        return await asyncio.gather(
            first.toggle_completion(first.get("h1"), "u1"),
            second.toggle_completion(second.get("h1"), "u1"),
        )

    marked, unmarked = asyncio.run(_run())

    assert marked.completed and not unmarked.completed
    assert first.get("h1").current_streak == 0
    assert second.get("h1").current_streak == 0
    stored = asyncio.run(store.get(habit_path("h1")))
    assert stored["currentStreak"] == 0
