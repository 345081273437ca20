# src/remindsync/reminders/scheduler.py

"""
Reminder scheduler.

One asyncio task per armed reminder, kept in two registries keyed by id
(recurring tasks and one-time tasks). Per id the state machine is:

    Unscheduled -> Armed(fire_at) -> Firing -> Armed(next) | Unscheduled

- Arming always cancels the previous timer for the same id first, so two fire
  handlers for one id never run concurrently.
- Cancelling is side-effect free: persistence and notification happen only
  after the sleep completes.
- Fire handlers reload the task from the store and never raise; errors are
  logged and the task stays Unscheduled until the next explicit schedule call
  or restart.

Public methods are thread-safe: called from another thread they are handed to
the scheduler's loop with call_soon_threadsafe.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..core.loop import call_in_loop
from ..core.ports import Clock, NotificationSink, ReminderRepo
from ..timeutil import now_local, seconds_until
from .models import NotificationPayload, RecurringTask, Task, TaskKind, TaskStatus
from .recurrence import compute_next, sanitize, should_fire_now

logger = logging.getLogger(__name__)

DEFAULT_ONE_TIME_GRACE = timedelta(seconds=60)


@dataclass(slots=True)
class _Armed:
    handle: asyncio.Task[None]
    fire_at: datetime


class ReminderScheduler:
    def __init__(
        self,
        store: ReminderRepo,
        sink: NotificationSink,
        *,
        clock: Clock = now_local,
        on_change: Callable[[], None] | None = None,
        one_time_grace: timedelta = DEFAULT_ONE_TIME_GRACE,
    ) -> None:
        self._store = store
        self._sink = sink
        self._clock = clock
        self._on_change = on_change
        self._grace = one_time_grace
        self._loop: asyncio.AbstractEventLoop | None = None
        self._recurring: dict[str, _Armed] = {}
        self._tasks: dict[str, _Armed] = {}

    # ---- lifecycle ----

    def start(self) -> int:
        """Bind to the running loop and arm everything persisted. Returns the number of armed timers."""
        self._loop = asyncio.get_running_loop()
        return self.schedule_existing()

    def stop(self) -> None:
        self._call(self._cancel_all)

    def _cancel_all(self) -> None:
        for armed in list(self._recurring.values()) + list(self._tasks.values()):
            armed.handle.cancel()
        self._recurring.clear()
        self._tasks.clear()

    # ---- schedule control ----

    def schedule_existing(self) -> int:
        """Arm every non-paused recurring task and every active one-time task with a future reminder."""
        armed = 0
        now = self._clock()

        try:
            recurring = self._store.list_recurring_tasks()
        except Exception:
            logger.exception("list_recurring_tasks failed; recurring reminders not armed")
            recurring = []

        for task in recurring:
            if task.is_paused or task.is_deleted:
                continue
            self.schedule_recurring(task)
            armed += 1

        try:
            tasks = self._store.list_active_tasks()
        except Exception:
            logger.exception("list_active_tasks failed; one-time reminders not armed")
            tasks = []

        for task in tasks:
            if task.reminder_time is None or task.reminder_time <= now:
                continue
            self.schedule_task(task)
            armed += 1

        logger.info("Scheduler armed %d reminder(s)", armed)
        return armed

    def schedule_recurring(self, task: RecurringTask) -> None:
        self._call(self._arm_recurring, task)

    def schedule_task(self, task: Task) -> None:
        self._call(self._arm_task, task)

    def cancel_recurring(self, task_id: str) -> None:
        self._call(self._cancel, self._recurring, task_id)

    def cancel_task(self, task_id: str) -> None:
        self._call(self._cancel, self._tasks, task_id)

    def armed_recurring(self) -> dict[str, datetime]:
        return {k: v.fire_at for k, v in self._recurring.items()}

    def armed_tasks(self) -> dict[str, datetime]:
        return {k: v.fire_at for k, v in self._tasks.items()}

    # ---- arming (loop thread only) ----

    def _call(self, fn: Callable[..., None], *args: object) -> None:
        call_in_loop(self._loop, fn, *args)

    @staticmethod
    def _cancel(registry: dict[str, _Armed], task_id: str) -> None:
        armed = registry.pop(task_id, None)
        if armed is not None:
            armed.handle.cancel()

    def _arm_recurring(self, task: RecurringTask) -> None:
        self._cancel(self._recurring, task.id)
        if task.is_paused or task.is_deleted:
            return
        fire_at = task.next_trigger
        if fire_at is None:
            try:
                fire_at = compute_next(task, self._clock())
            except Exception:
                logger.exception("Cannot compute next trigger for recurring task %s", task.id)
                return
        self._arm(self._recurring, task.id, fire_at, self._fire_recurring)

    def _arm_task(self, task: Task) -> None:
        self._cancel(self._tasks, task.id)
        if task.reminder_time is None or task.is_deleted or task.status == TaskStatus.COMPLETED:
            return
        self._arm(self._tasks, task.id, task.reminder_time, self._fire_task)

    def _arm(
        self,
        registry: dict[str, _Armed],
        task_id: str,
        fire_at: datetime,
        fire: Callable[[str], NotificationPayload | None],
    ) -> None:
        delay = seconds_until(fire_at, self._clock())
        loop = self._loop or asyncio.get_running_loop()
        handle = loop.create_task(self._wait_and_fire(registry, task_id, delay, fire))
        registry[task_id] = _Armed(handle=handle, fire_at=fire_at)
        logger.debug("Armed %s at %s (in %.0fs)", task_id, fire_at, delay)

    async def _wait_and_fire(
        self,
        registry: dict[str, _Armed],
        task_id: str,
        delay: float,
        fire: Callable[[str], NotificationPayload | None],
    ) -> None:
        await asyncio.sleep(delay)
        # Leave the registry before firing so a rearm does not cancel this handler.
        armed = registry.get(task_id)
        if armed is not None and armed.handle is asyncio.current_task():
            del registry[task_id]
        fire(task_id)

    # ---- fire handlers ----

    def _fire_recurring(self, task_id: str) -> NotificationPayload | None:
        try:
            task = self._store.get_recurring_task(task_id)
            if task is None or task.is_deleted or task.is_paused:
                logger.debug("Recurring %s dropped (gone or paused)", task_id)
                return None

            now = self._clock()
            if not should_fire_now(task, now):
                # Alive but outside its active window: move on silently.
                task.next_trigger = compute_next(task, now)
                self._store.update_recurring_trigger(task_id, next_trigger=task.next_trigger)
                self._changed()
                self._arm_recurring(task)
                return None

            spec = sanitize(task)
            spec.last_triggered = now
            spec.next_trigger = compute_next(spec, now)
            self._store.update_recurring_trigger(
                task_id, next_trigger=spec.next_trigger, last_triggered=now
            )

            payload = self._notify(task_id, spec.description, TaskKind.RECURRING, now)
            self._arm_recurring(spec)
            logger.info("Recurring %s fired; next at %s", task_id, spec.next_trigger)
            return payload
        except Exception:
            logger.exception("Recurring fire failed task_id=%s", task_id)
            return None

    def _fire_task(self, task_id: str) -> NotificationPayload | None:
        try:
            task = self._store.get_task(task_id)
            if task is None or task.is_deleted or task.status == TaskStatus.COMPLETED:
                logger.debug("Task %s dropped (gone or completed)", task_id)
                return None

            now = self._clock()
            if task.reminder_time is None:
                return None
            if task.reminder_time > now:
                # Moved later since arming (edit or merge): follow the stored time.
                self._arm_task(task)
                return None
            if task.reminder_time + self._grace < now:
                logger.info("Task %s reminder at %s is stale; not firing", task_id, task.reminder_time)
                return None

            payload = self._notify(task_id, task.description, TaskKind.ONE_TIME, now)
            logger.info("Task %s fired", task_id)
            return payload
        except Exception:
            logger.exception("Task fire failed task_id=%s", task_id)
            return None

    def _notify(
        self,
        reminder_id: str,
        description: str,
        kind: TaskKind,
        now: datetime,
    ) -> NotificationPayload:
        record = self._store.create_reminder_record(
            reminder_id=reminder_id,
            description=description,
            kind=kind,
            trigger_time=now,
        )
        self._changed()
        settings = self._store.load_settings()
        payload = NotificationPayload(
            record_id=record.id,
            reminder_id=reminder_id,
            kind=kind,
            description=description,
            snooze_minutes=settings.snooze_minutes,
        )
        self._sink.publish(payload)
        return payload

    def _changed(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            logger.exception("on_change callback failed")
