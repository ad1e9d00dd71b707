"""mind_reset/services/schedules.py

Schedule store: one current day schedule per (user, day).

Rules:
- A day's document is created lazily on first access, from the user's last
  saved wake/sleep preference (falling back to settings defaults).
- Every edit is committed as a full-document overwrite.
- Changing wake or sleep time regenerates the hourly blocks and drops the
  text typed into the old blocks.
- At most one live subscription per store instance; loading another day
  closes the previous one first.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable

from mind_reset.errors import (
    DecodeError,
    ErrorChannel,
    MindResetError,
    NotFound,
    StoreError,
    ValidationError,
)
from mind_reset.schemas.schedule import DaySchedule, TimeBlock, TodayPriority
from mind_reset.settings import settings
from mind_reset.store import (
    DocumentStore,
    KeyedLock,
    Snapshot,
    Subscription,
    day_schedule_path,
    user_path,
)
from mind_reset.temporal import (
    anchor_time,
    day_key,
    format_hhmm,
    hour_labels,
    now_local,
    parse_hhmm,
    start_of_day,
)

logger = logging.getLogger("mind_reset.schedules")

WAKE_PREFERENCE_FIELD = "defaultWakeUpTime"
SLEEP_PREFERENCE_FIELD = "defaultSleepTime"

ScheduleListener = Callable[[DaySchedule | None], None]


def generate_time_blocks(wake: dt.datetime, sleep: dt.datetime) -> list[TimeBlock]:
    return [TimeBlock(time=label, task="") for label in hour_labels(wake, sleep)]


def default_schedule(
    day: dt.date | dt.datetime,
    user_id: str,
    wake: dt.time,
    sleep: dt.time,
) -> DaySchedule:
    midnight = start_of_day(day)
    wake_at = anchor_time(midnight, wake)
    sleep_at = anchor_time(midnight, sleep)
    return DaySchedule(
        id=day_key(midnight),
        user_id=user_id,
        date=midnight,
        wake_up_time=wake_at,
        sleep_time=sleep_at,
        priorities=[TodayPriority(title=settings.DEFAULT_PRIORITY_TITLE, progress=0.0)],
        time_blocks=generate_time_blocks(wake_at, sleep_at),
    )


def _preference_time(raw, fallback: str) -> dt.time:
    if isinstance(raw, str):
        try:
            return parse_hhmm(raw)
        except ValueError:
            logger.warning("Ignoring malformed time preference %r", raw)
    return parse_hhmm(fallback)


class ScheduleStore:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], dt.datetime] = now_local,
        locale: str = "en",
        locks: KeyedLock | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._mutex = locks if locks is not None else KeyedLock()
        self._subscription: Subscription | None = None
        self._listeners: list[ScheduleListener] = []
        # bumped on every load so late results for a replaced day are dropped
        self._generation = 0
        self._current: tuple[str, str] | None = None

        self.schedule: DaySchedule | None = None
        self.errors = ErrorChannel(locale)

    # observation

    def on_change(self, listener: ScheduleListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _publish(self, schedule: DaySchedule | None) -> None:
        self.schedule = schedule
        for listener in list(self._listeners):
            listener(schedule)

    def _fail(self, error: MindResetError, message_key: str) -> None:
        error.message_key = message_key
        self.errors.publish(error)

    def _is_current(self, schedule: DaySchedule) -> bool:
        return self._current == (schedule.user_id, schedule.id)

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # loading

    async def preferred_bounds(self, user_id: str) -> tuple[dt.time, dt.time]:
        try:
            data = await self._store.get(user_path(user_id)) or {}
        except StoreError:
            logger.warning("Falling back to default day bounds for %s", user_id)
            data = {}
        return (
            _preference_time(data.get(WAKE_PREFERENCE_FIELD), settings.DEFAULT_WAKE_UP),
            _preference_time(data.get(SLEEP_PREFERENCE_FIELD), settings.DEFAULT_SLEEP),
        )

    async def load_or_create(self, date: dt.date | dt.datetime, user_id: str) -> DaySchedule | None:
        midnight = start_of_day(date)
        key = day_key(midnight)
        path = day_schedule_path(user_id, key)

        self.close()
        self._generation += 1
        generation = self._generation
        self._current = (user_id, key)
        self._publish(None)

        initial: list[bool] = []

        def _on_snapshot(snapshot: Snapshot) -> None:
            if generation != self._generation:
                return
            if not initial:
                initial.append(snapshot.exists)
            if not snapshot.exists:
                return
            try:
                schedule = DaySchedule.from_document(snapshot.id, snapshot.data)
            except DecodeError as exc:
                logger.warning("Skipping unreadable day schedule %s: %s", path, exc)
                self._fail(exc, "error.decode")
                return
            self._publish(schedule)

        try:
            subscription = await self._store.subscribe(path, _on_snapshot)
        except StoreError as exc:
            logger.error("Error loading day schedule %s: %s", path, exc)
            self._fail(exc, "schedule.error.load")
            return None

        if generation != self._generation:
            # a newer load replaced this one while we were waiting
            subscription.close()
            return None
        self._subscription = subscription

        exists = initial[0] if initial else await self._exists(path)
        if exists:
            return self.schedule

        wake, sleep = await self.preferred_bounds(user_id)
        schedule = default_schedule(midnight, user_id, wake, sleep)
        try:
            async with self._mutex.hold(path):
                await self._store.set(path, schedule.to_document())
        except StoreError as exc:
            logger.error("Error creating default schedule %s: %s", path, exc)
            self._fail(exc, "schedule.error.save")
            return None

        logger.info("Created default schedule %s for user %s", key, user_id)
        if generation == self._generation and self.schedule is None:
            self._publish(schedule)
        return schedule if generation == self._generation else None

    async def load_today(self, user_id: str) -> DaySchedule | None:
        return await self.load_or_create(self._clock(), user_id)

    async def _exists(self, path: str) -> bool:
        try:
            return await self._store.get(path) is not None
        except StoreError:
            # assume present rather than overwrite a document we could not read
            return True

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    # persistence

    async def save(self, schedule: DaySchedule) -> bool:
        """Publish ``schedule`` and overwrite its document; undo the publish on failure."""
        shown = self._is_current(schedule)
        previous = self.schedule
        if shown:
            self._publish(schedule)
        path = day_schedule_path(schedule.user_id, schedule.id)
        try:
            async with self._mutex.hold(path):
                await self._store.set(path, schedule.to_document())
        except StoreError as exc:
            logger.error("Error updating day schedule %s, rolling back: %s", path, exc)
            if shown and self.schedule is schedule:
                self._publish(previous)
            self._fail(exc, "schedule.error.save")
            return False
        return True

    async def regenerate_blocks(self, schedule: DaySchedule) -> bool:
        updated = schedule.model_copy(deep=True)
        updated.time_blocks = generate_time_blocks(updated.wake_up_time, updated.sleep_time)
        return await self.save(updated)

    async def set_times(
        self,
        schedule: DaySchedule,
        *,
        wake: dt.time | None = None,
        sleep: dt.time | None = None,
    ) -> bool:
        """Change wake and/or sleep time, remember them and rebuild the blocks."""
        if wake is None and sleep is None:
            return True
        updated = schedule.model_copy(deep=True)
        if wake is not None:
            updated.wake_up_time = anchor_time(updated.date, wake)
        if sleep is not None:
            updated.sleep_time = anchor_time(updated.date, sleep)
        await self._remember_bounds(updated)
        return await self.regenerate_blocks(updated)

    async def _remember_bounds(self, schedule: DaySchedule) -> None:
        fields = {
            WAKE_PREFERENCE_FIELD: format_hhmm(schedule.wake_up_time),
            SLEEP_PREFERENCE_FIELD: format_hhmm(schedule.sleep_time),
        }
        try:
            await self._store.update(user_path(schedule.user_id), fields)
        except NotFound:
            await self._store_new_preferences(schedule.user_id, fields)
        except StoreError as exc:
            logger.warning("Could not remember day bounds for %s: %s", schedule.user_id, exc)

    async def _store_new_preferences(self, user_id: str, fields: dict) -> None:
        try:
            await self._store.set(user_path(user_id), fields)
        except StoreError as exc:
            logger.warning("Could not remember day bounds for %s: %s", user_id, exc)

    # field edits

    async def set_priorities(self, schedule: DaySchedule, priorities: list[TodayPriority]) -> bool:
        if not priorities:
            raise ValidationError("a day keeps at least one priority")
        updated = schedule.model_copy(deep=True)
        updated.priorities = [p.model_copy() for p in priorities]
        return await self.save(updated)

    async def add_priority(self, schedule: DaySchedule, title: str = "") -> bool:
        updated = schedule.model_copy(deep=True)
        updated.priorities.append(TodayPriority(title=title, progress=0.0))
        return await self.save(updated)

    async def update_priority(
        self,
        schedule: DaySchedule,
        priority_id: str,
        *,
        title: str | None = None,
        progress: float | None = None,
    ) -> bool:
        if progress is not None and not 0.0 <= progress <= 1.0:
            raise ValidationError("progress must be between 0 and 1")
        updated = schedule.model_copy(deep=True)
        priority = next((p for p in updated.priorities if p.id == priority_id), None)
        if priority is None:
            raise ValidationError(f"unknown priority {priority_id}")
        if title is not None:
            priority.title = title
        if progress is not None:
            priority.progress = progress
        return await self.save(updated)

    async def remove_priority(self, schedule: DaySchedule, priority_id: str) -> bool:
        updated = schedule.model_copy(deep=True)
        remaining = [p for p in updated.priorities if p.id != priority_id]
        if len(remaining) == len(updated.priorities):
            raise ValidationError(f"unknown priority {priority_id}")
        if not remaining:
            raise ValidationError("a day keeps at least one priority")
        updated.priorities = remaining
        return await self.save(updated)

    async def update_time_block(
        self,
        schedule: DaySchedule,
        block_id: str,
        *,
        time: str | None = None,
        task: str | None = None,
    ) -> bool:
        updated = schedule.model_copy(deep=True)
        block = next((b for b in updated.time_blocks if b.id == block_id), None)
        if block is None:
            raise ValidationError(f"unknown time block {block_id}")
        if time is not None:
            block.time = time
        if task is not None:
            block.task = task
        return await self.save(updated)

    # cross-day copy

    async def copy_previous(self, target_date: dt.date | dt.datetime, user_id: str) -> bool:
        """Copy yesterday's priorities, day bounds and blocks onto ``target_date``."""
        target = start_of_day(target_date)
        source_key = day_key(target - dt.timedelta(days=1))
        source_path = day_schedule_path(user_id, source_key)

        try:
            data = await self._store.get(source_path)
        except StoreError as exc:
            logger.error("Error fetching source schedule %s: %s", source_path, exc)
            self._fail(exc, "schedule.error.copy")
            return False
        if data is None:
            logger.info("Source schedule %s not found", source_path)
            self._fail(NotFound(source_path), "schedule.error.copy")
            return False
        try:
            source = DaySchedule.from_document(source_key, data)
        except DecodeError as exc:
            logger.warning("Source schedule %s unreadable: %s", source_path, exc)
            self._fail(exc, "schedule.error.copy")
            return False

        copied = source.model_copy(deep=True)
        copied.id = day_key(target)
        copied.user_id = user_id
        copied.date = target
        copied.wake_up_time = anchor_time(target, source.wake_up_time)
        copied.sleep_time = anchor_time(target, source.sleep_time)

        target_path = day_schedule_path(user_id, copied.id)
        try:
            async with self._mutex.hold(target_path):
                await self._store.set(target_path, copied.to_document())
        except StoreError as exc:
            logger.error("Error saving target schedule %s: %s", target_path, exc)
            self._fail(exc, "schedule.error.copy")
            return False

        if self._is_current(copied):
            self._publish(copied)
        return True
