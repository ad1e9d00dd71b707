"""mind_reset/services/habits.py

Habit store: a user's habits, streak bookkeeping, points and notes.

Completion toggle, per habit and day:
- NotDoneToday -> DoneToday appends a record dated now. The streak grows by
  one only when ``lastReset`` is not today, so a second mark on the same day
  never double counts. Points: 1 + streak, plus a one-time bonus when the
  streak lands exactly on 7, 30 or 365.
- DoneToday -> NotDoneToday removes today's records, lowers the streak by one
  (never below zero), retracts a longest streak that the removed day had set
  and clears ``lastReset``.

The new habit is published to ``habits`` before it is written; a failed write
restores the previous habit and streak caches and reports on ``errors``.
Mutations of one habit run one at a time.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable

from mind_reset.errors import (
    DecodeError,
    ErrorChannel,
    MindResetError,
    NotFound,
    StoreError,
    ValidationError,
)
from mind_reset.i18n import t
from mind_reset.schemas.habit import (
    COMPLETED,
    DISTANCE_MILES,
    ENTRIES_WRITTEN,
    MINUTES,
    MONTHLY_STREAK_DAYS,
    PAGES_READ,
    WEEKLY_STREAK_DAYS,
    YEARLY_STREAK_DAYS,
    Habit,
    HabitRecord,
    MetricCategory,
    MetricType,
    UserNote,
)
from mind_reset.session import AuthSession
from mind_reset.settings import settings
from mind_reset.store import (
    HABITS,
    USER_NOTES,
    DocumentStore,
    KeyedLock,
    Snapshot,
    Subscription,
    habit_path,
    note_path,
    user_path,
)
from mind_reset.temporal import day_key, is_same_day, now_local

logger = logging.getLogger("mind_reset.habits")

DEFAULTS_FLAG_FIELD = "defaultHabitsCreated"
TOTAL_POINTS_FIELD = "totalPoints"

HabitsListener = Callable[[list[Habit]], None]


@dataclass(frozen=True)
class ToggleResult:
    habit: Habit
    completed: bool
    points_awarded: int


def points_for_streak(streak: int) -> int:
    points = settings.DAILY_COMPLETION_POINT + streak
    if streak == WEEKLY_STREAK_DAYS:
        points += settings.WEEKLY_STREAK_BONUS
    if streak == MONTHLY_STREAK_DAYS:
        points += settings.MONTHLY_STREAK_BONUS
    if streak == YEARLY_STREAK_DAYS:
        points += settings.YEARLY_STREAK_BONUS
    return points


def mark_done(habit: Habit, now: dt.datetime, value: float = 1.0) -> Habit:
    updated = habit.model_copy(deep=True)
    updated.daily_records.append(HabitRecord(date=now, value=value))
    last_reset_key = day_key(updated.last_reset) if updated.last_reset else ""
    if last_reset_key != day_key(now):
        updated.current_streak += 1
        if updated.current_streak > updated.longest_streak:
            updated.longest_streak = updated.current_streak
        updated.last_reset = now
    return updated


def unmark_done(habit: Habit, now: dt.datetime) -> Habit:
    updated = habit.model_copy(deep=True)
    updated.daily_records = [r for r in updated.daily_records if not is_same_day(r.date, now)]
    updated.current_streak = max(updated.current_streak - 1, 0)
    if updated.current_streak < updated.longest_streak and habit.current_streak == habit.longest_streak:
        updated.longest_streak = updated.current_streak
    updated.last_reset = None
    return updated


def toggled(habit: Habit, now: dt.datetime, value: float = 1.0) -> Habit:
    if habit.is_completed_on(now):
        return unmark_done(habit, now)
    return mark_done(habit, now, value)


def default_habits(user_id: str, now: dt.datetime) -> list[Habit]:
    def _habit(title, description, goal, category, metric):
        return Habit(
            owner_id=user_id,
            title=title,
            description=description,
            goal=goal,
            start_date=now,
            metric_category=category,
            metric_type=MetricType.predefined(metric),
        )

    return [
        _habit(
            "Daily Walk",
            "Take a short walk outside to increase overall health and physical well-being.",
            "Promote an active lifestyle and improve physical health.",
            MetricCategory.QUANTITY,
            DISTANCE_MILES,
        ),
        _habit(
            "Reading",
            "Read for a specific amount of time or pages to improve and learn new things.",
            "Encourage knowledge acquisition and mental stimulation.",
            MetricCategory.QUANTITY,
            PAGES_READ,
        ),
        _habit(
            "Journaling",
            "Write down your thoughts and feelings to enhance mindfulness and self-reflection.",
            "Promote self-awareness and personal growth.",
            MetricCategory.QUANTITY,
            ENTRIES_WRITTEN,
        ),
        _habit(
            "Plan Daily Tasks",
            "Plan and organize your daily tasks to ensure efficiency throughout the day.",
            "Increase productivity and manage stress effectively.",
            MetricCategory.COMPLETION,
            COMPLETED,
        ),
        _habit(
            "Meditation",
            "Practice mindfulness through meditation, focus on your breath, or other techniques.",
            "Reduce stress, enhance focus, and promote emotional well-being.",
            MetricCategory.TIME,
            MINUTES,
        ),
    ]


_PROMPT_KEYWORDS = [
    ("minute", "metric.prompt.minutes"),
    ("miles", "metric.prompt.miles"),
    ("pages", "metric.prompt.pages"),
    ("entries", "metric.prompt.entries"),
    ("reps", "metric.prompt.reps"),
    ("steps", "metric.prompt.steps"),
    ("calories", "metric.prompt.calories"),
    ("hours", "metric.prompt.hours"),
    ("completed", "metric.prompt.completed"),
]


def metric_prompt(habit: Habit, locale: str = "en") -> str:
    name = habit.metric_type.name.lower()
    if habit.metric_type.kind == "predefined":
        for keyword, key in _PROMPT_KEYWORDS:
            if keyword in name:
                return t(key, locale)
    return t("metric.prompt.generic", locale, metric=name)


def validate_metric_value(habit: Habit, value: float | None) -> float:
    if value is None:
        return 1.0
    if habit.metric_category is MetricCategory.COMPLETION and value not in (0, 1):
        raise ValidationError("completion habits accept only 0 or 1")
    if value < 0:
        raise ValidationError("value must not be negative")
    return float(value)


class HabitStore:
    def __init__(
        self,
        store: DocumentStore,
        session: AuthSession,
        *,
        clock: Callable[[], dt.datetime] = now_local,
        locale: str = "en",
        locks: KeyedLock | None = None,
    ) -> None:
        self._store = store
        self._session = session
        self._clock = clock
        self._mutex = locks if locks is not None else KeyedLock()
        self._subscription: Subscription | None = None
        self._listeners: list[HabitsListener] = []
        self._generation = 0

        self.habits: list[Habit] = []
        # high-water marks; a remote emission never lowers them
        self.local_streaks: dict[str, int] = {}
        self.local_longest_streaks: dict[str, int] = {}
        # per-session view of today's records, see daily_reset_if_needed
        self.today_records: dict[str, list[HabitRecord]] = {}
        self.errors = ErrorChannel(locale)

    # observation

    def on_change(self, listener: HabitsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _publish(self) -> None:
        snapshot = list(self.habits)
        for listener in list(self._listeners):
            listener(snapshot)

    def _fail(self, error: MindResetError, message_key: str) -> None:
        error.message_key = message_key
        self.errors.publish(error)

    def _index(self, habit_id: str) -> int | None:
        for idx, habit in enumerate(self.habits):
            if habit.id == habit_id:
                return idx
        return None

    def get(self, habit_id: str) -> Habit | None:
        idx = self._index(habit_id)
        return self.habits[idx] if idx is not None else None

    def displayed_streaks(self, habit_id: str) -> tuple[int, int]:
        habit = self.get(habit_id)
        current = habit.current_streak if habit else 0
        longest = habit.longest_streak if habit else 0
        return (
            self.local_streaks.get(habit_id, current),
            self.local_longest_streaks.get(habit_id, longest),
        )

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # live query

    def _raise_local_streaks(self, habits: list[Habit]) -> None:
        for habit in habits:
            if habit.id is None:
                continue
            if habit.current_streak > self.local_streaks.get(habit.id, 0):
                self.local_streaks[habit.id] = habit.current_streak
            if habit.longest_streak > self.local_longest_streaks.get(habit.id, 0):
                self.local_longest_streaks[habit.id] = habit.longest_streak

    async def subscribe(self, user_id: str) -> list[Habit]:
        self.close()
        self._generation += 1
        generation = self._generation

        def _on_snapshots(snapshots: list[Snapshot]) -> None:
            if generation != self._generation:
                return
            habits: list[Habit] = []
            for snap in snapshots:
                try:
                    habits.append(Habit.from_document(snap.id, snap.data))
                except DecodeError as exc:
                    logger.warning("Error decoding habit (ID: %s): %s", snap.id, exc)
            self.habits = habits
            self._raise_local_streaks(habits)
            self._publish()

        try:
            subscription = await self._store.subscribe_query(
                HABITS,
                _on_snapshots,
                where=[("ownerId", user_id)],
                order_by="startDate",
                descending=True,
            )
        except StoreError as exc:
            logger.error("Error fetching habits for %s: %s", user_id, exc)
            self._fail(exc, "habit.error.fetch")
            return []

        if generation != self._generation:
            subscription.close()
            return []
        self._subscription = subscription
        return list(self.habits)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    # CRUD

    async def _insert(self, habit: Habit, message_key: str = "habit.error.create") -> Habit | None:
        try:
            habit_id = await self._store.add(HABITS, habit.to_document())
        except StoreError as exc:
            logger.error("Error adding habit %r: %s", habit.title, exc)
            self._fail(exc, message_key)
            return None
        return habit.model_copy(update={"id": habit_id})

    async def create(self, habit: Habit) -> Habit | None:
        user_id = self._session.current_user_id()
        if not user_id or user_id != habit.owner_id:
            raise ValidationError("habits can only be added by their owner")
        if not habit.title.strip():
            raise ValidationError("title must not be empty")
        return await self._insert(habit)

    async def update(self, habit: Habit) -> bool:
        if habit.id is None:
            raise ValidationError("habit has no id")
        async with self._mutex.hold(habit_path(habit.id)):
            try:
                await self._store.set(habit_path(habit.id), habit.to_document())
            except StoreError as exc:
                logger.error("Error updating habit %s: %s", habit.id, exc)
                self._fail(exc, "habit.error.update")
                return False
            idx = self._index(habit.id)
            if idx is not None:
                self.habits[idx] = habit
                self._publish()
        logger.info("Habit %r updated (ID: %s)", habit.title, habit.id)
        return True

    async def update_details(
        self,
        habit: Habit,
        *,
        title: str | None = None,
        description: str | None = None,
        goal: str | None = None,
    ) -> bool:
        changes = {
            name: value
            for name, value in (("title", title), ("description", description), ("goal", goal))
            if value is not None and value != getattr(habit, name)
        }
        if not changes:
            return True
        if "title" in changes and not changes["title"].strip():
            raise ValidationError("title must not be empty")
        return await self.update(habit.model_copy(update=changes))

    async def delete(self, habit: Habit) -> bool:
        if habit.id is None:
            raise ValidationError("habit has no id")
        habit_id = habit.id
        async with self._mutex.hold(habit_path(habit_id)):
            try:
                await self._store.delete(habit_path(habit_id))
            except StoreError as exc:
                logger.error("Error deleting habit %s: %s", habit_id, exc)
                self._fail(exc, "habit.error.delete")
                return False
            self.habits = [h for h in self.habits if h.id != habit_id]
            self.local_streaks.pop(habit_id, None)
            self.local_longest_streaks.pop(habit_id, None)
            self.today_records.pop(habit_id, None)
            self._publish()
        logger.info("Habit (ID: %s) deleted", habit_id)
        return True

    # completion

    async def _commit(self, old: Habit, updated: Habit) -> bool:
        """Publish ``updated`` optimistically and write it; undo on failure."""
        habit_id = updated.id
        previous_caches = (
            self.local_streaks.get(habit_id),
            self.local_longest_streaks.get(habit_id),
        )
        self.local_streaks[habit_id] = updated.current_streak
        self.local_longest_streaks[habit_id] = updated.longest_streak
        idx = self._index(habit_id)
        if idx is not None:
            self.habits[idx] = updated
        self._publish()

        try:
            await self._store.set(habit_path(habit_id), updated.to_document())
        except StoreError as exc:
            logger.error("Error updating habit %s, rolling back: %s", habit_id, exc)
            idx = self._index(habit_id)
            if idx is not None:
                self.habits[idx] = old
            for cache, value in zip((self.local_streaks, self.local_longest_streaks), previous_caches):
                if value is None:
                    cache.pop(habit_id, None)
                else:
                    cache[habit_id] = value
            self._publish()
            self._fail(exc, "habit.error.update")
            return False
        return True

    def _loaded(self, habit: Habit) -> Habit:
        if habit.id is None:
            raise ValidationError("habit has no id")
        current = self.get(habit.id)
        if current is None:
            raise ValidationError(f"habit {habit.id} is not loaded")
        return current

    async def toggle_completion(
        self,
        habit: Habit,
        user_id: str,
        value: float | None = None,
    ) -> ToggleResult | None:
        """Mark the habit done for today, or undo today's completion."""
        mark_value = validate_metric_value(habit, value)
        async with self._mutex.hold(habit_path(habit.id or "")):
            old = self._loaded(habit)
            now = self._clock()
            if not old.is_completed_on(now) and mark_value == 0:
                return ToggleResult(old, False, 0)

            updated = toggled(old, now, mark_value)
            completed = updated.is_completed_on(now)
            awarded = points_for_streak(updated.current_streak) if completed else 0
            updated.points += awarded

            if not await self._commit(old, updated):
                return None

        if awarded:
            await self.award_points(user_id, awarded)
        return ToggleResult(updated, completed, awarded)

    async def record_value(self, habit: Habit, user_id: str, value: float) -> ToggleResult | None:
        """Log a metric value for today without toggling an existing completion."""
        mark_value = validate_metric_value(habit, value)
        async with self._mutex.hold(habit_path(habit.id or "")):
            old = self._loaded(habit)
            now = self._clock()
            if mark_value == 0:
                return ToggleResult(old, old.is_completed_on(now), 0)

            already_completed = old.is_completed_on(now)
            updated = mark_done(old, now, mark_value)
            awarded = 0 if already_completed else points_for_streak(updated.current_streak)
            updated.points += awarded

            if not await self._commit(old, updated):
                return None

        if awarded:
            await self.award_points(user_id, awarded)
        return ToggleResult(updated, True, awarded)

    async def award_points(self, user_id: str, points: int) -> bool:
        try:
            total = await self._store.increment(user_path(user_id), TOTAL_POINTS_FIELD, points)
        except (StoreError, NotFound) as exc:
            logger.error("Error awarding %s points to %s: %s", points, user_id, exc)
            self._fail(exc, "habit.error.points")
            return False
        logger.info("Points awarded to %s: +%s (total %s)", user_id, points, total)
        return True

    # starter habits

    async def seed_defaults_if_needed(self, user_id: str) -> bool:
        """Create the starter habits once per user. True when this call seeded them."""
        path = user_path(user_id)
        try:
            claimed = await self._store.claim_flag(path, DEFAULTS_FLAG_FIELD)
        except NotFound:
            logger.info("No user doc found for %s. Skipping default habits.", user_id)
            return False
        except StoreError as exc:
            logger.error("Error claiming default habits for %s: %s", user_id, exc)
            self._fail(exc, "habit.error.seed")
            return False
        if not claimed:
            logger.debug("Default habits already exist for %s", user_id)
            return False

        logger.info("Creating default habits for user %s", user_id)
        created: list[Habit] = []
        for habit in default_habits(user_id, self._clock()):
            stored = await self._insert(habit, "habit.error.seed")
            if stored is None:
                await self._undo_seed(path, created)
                return False
            created.append(stored)

        if not self.subscribed:
            self.habits.extend(created)
            self._publish()
        return True

    async def _undo_seed(self, path: str, created: list[Habit]) -> None:
        try:
            for habit in created:
                await self._store.delete(habit_path(habit.id))
            await self._store.update(path, {DEFAULTS_FLAG_FIELD: False})
        except (StoreError, NotFound) as exc:
            logger.error("Could not undo partial default habits at %s: %s", path, exc)

    # local hygiene

    def daily_reset_if_needed(self) -> list[str]:
        """Drop stale days from the per-session view of today's records.

        Only ``today_records`` is touched; the stored record history and the
        habits in ``habits`` keep every day.
        """
        now = self._clock()
        reset: list[str] = []
        for habit in self.habits:
            if habit.id is None:
                continue
            latest = habit.latest_record()
            if latest is not None and not is_same_day(latest.date, now):
                self.today_records[habit.id] = []
                reset.append(habit.id)
            else:
                self.today_records[habit.id] = habit.records_on(now)
        return reset

    def completed_today_count(self) -> int:
        now = self._clock()
        return sum(1 for habit in self.habits if habit.is_completed_on(now))

    # notes

    async def save_note(self, habit_id: str, text: str) -> UserNote | None:
        if not text or not text.strip():
            raise ValidationError("note text must not be empty")
        if not habit_id or not habit_id.strip():
            raise ValidationError("note needs a habit")
        note = UserNote(habit_id=habit_id, note_text=text, timestamp=self._clock())
        try:
            note_id = await self._store.add(USER_NOTES, note.to_document())
        except StoreError as exc:
            logger.error("Error saving user note for habit %s: %s", habit_id, exc)
            self._fail(exc, "note.error.save")
            return None
        return note.model_copy(update={"id": note_id})

    async def delete_note(self, note: UserNote) -> bool:
        if note.id is None:
            raise ValidationError("note has no id")
        try:
            await self._store.delete(note_path(note.id))
        except StoreError as exc:
            logger.error("Error deleting note %s: %s", note.id, exc)
            self._fail(exc, "note.error.delete")
            return False
        return True

    async def list_notes(self, habit_id: str) -> list[UserNote]:
        try:
            snapshots = await self._store.query(
                USER_NOTES,
                where=[("habitID", habit_id)],
                order_by="timestamp",
                descending=True,
            )
        except StoreError as exc:
            logger.error("Error fetching notes for habit %s: %s", habit_id, exc)
            self._fail(exc, "error.store")
            return []
        notes: list[UserNote] = []
        for snap in snapshots:
            try:
                notes.append(UserNote.from_document(snap.id, snap.data))
            except DecodeError as exc:
                logger.warning("Skipping unreadable note %s: %s", snap.id, exc)
        return notes
