"""Durable async scheduler for deferred callbacks."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from croniter import croniter

from chat_agent.db import Database
from chat_agent.models import (
    CronTrigger,
    DelayedTrigger,
    NoScheduleTrigger,
    ScheduledTask,
    ScheduledTrigger,
    generate_id,
)

LOGGER = logging.getLogger(__name__)

TaskCallback = Callable[[str, ScheduledTask], Awaitable[None]]


class TaskScheduler:
    """Persists tasks in SQLite, polls due ones and dispatches them by callback name.

    One-off tasks are removed after they fire; cron tasks are re-armed for
    their next occurrence. Because state lives in the database, pending tasks
    survive process restarts.
    """

    def __init__(self, db: Database, poll_interval_seconds: float = 2.0) -> None:
        self._db = db
        self._poll_interval_seconds = poll_interval_seconds
        self._callbacks: dict[str, TaskCallback] = {}
        self._stop_event = asyncio.Event()
        self._recovered = False

    def register_callback(self, name: str, handler: TaskCallback) -> None:
        self._callbacks[name] = handler

    def create(
        self,
        conversation_id: str,
        trigger: ScheduledTrigger | DelayedTrigger | CronTrigger,
        callback: str,
        payload: str,
        now: datetime | None = None,
    ) -> ScheduledTask:
        """Persist a task and return it with its assigned id."""

        if isinstance(trigger, NoScheduleTrigger):
            raise ValueError("Cannot schedule a task without a trigger")
        now = now or datetime.now(timezone.utc)
        task = ScheduledTask(
            id=generate_id(),
            conversation_id=conversation_id,
            callback=callback,
            payload=payload,
            trigger_type=trigger.type,
            trigger_value=trigger.normalized(),
            next_run_at=first_run_at(trigger, now),
            status="pending",
        )
        self._db.create_scheduled_task(
            task_id=task.id,
            conversation_id=task.conversation_id,
            callback=task.callback,
            payload=task.payload,
            trigger_type=task.trigger_type,
            trigger_value=task.trigger_value,
            next_run_at=task.next_run_at,
        )
        LOGGER.info(
            "Scheduled task %s (%s %s) next run at %s",
            task.id,
            task.trigger_type,
            task.trigger_value,
            task.next_run_at.isoformat(),
        )
        return task

    def cancel(self, task_id: str) -> bool:
        """Remove a task. Returns False if it does not exist (already fired or cancelled)."""

        removed = self._db.delete_scheduled_task(task_id)
        if removed:
            LOGGER.info("Cancelled task %s", task_id)
        return removed

    def get(self, task_id: str) -> ScheduledTask | None:
        row = self._db.get_scheduled_task(task_id)
        return _row_to_task(row) if row else None

    def list_tasks(self, conversation_id: str | None = None) -> list[ScheduledTask]:
        return [_row_to_task(row) for row in self._db.list_scheduled_tasks(conversation_id)]

    async def run_pending(self, now: datetime | None = None) -> int:
        """Dispatch every due task once. Returns the number of tasks dispatched."""

        if not self._recovered:
            # Rows still `running` here were interrupted mid-callback by a crash.
            requeued = self._db.requeue_running_tasks()
            if requeued:
                LOGGER.warning("Requeued %d task(s) interrupted by a previous shutdown", requeued)
            self._recovered = True

        now = now or datetime.now(timezone.utc)
        dispatched = 0
        for row in self._db.get_due_tasks(now):
            task = _row_to_task(row)
            handler = self._callbacks.get(task.callback)
            if handler is None:
                LOGGER.error("No callback registered for %r (task %s)", task.callback, task.id)
                self._db.mark_task_status(task.id, "failed")
                continue

            self._db.mark_task_status(task.id, "running")
            succeeded = True
            try:
                await handler(task.payload, task)
            except Exception:  # noqa: BLE001
                succeeded = False
                LOGGER.exception("Task %s callback %r failed", task.id, task.callback)
            dispatched += 1

            if self._db.get_scheduled_task(task.id) is None:
                # The callback cancelled its own task.
                continue
            if task.is_recurring:
                self._db.reschedule_task(task.id, next_cron_run(task.trigger_value, now))
            elif succeeded:
                self._db.delete_scheduled_task(task.id)
            else:
                self._db.mark_task_status(task.id, "failed")
        return dispatched

    async def run_forever(self) -> None:
        """Run scheduler loop until stop() is called."""

        while not self._stop_event.is_set():
            try:
                await self.run_pending()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Scheduler poll failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval_seconds)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        """Signal the loop to stop."""

        self._stop_event.set()


def first_run_at(trigger: ScheduledTrigger | DelayedTrigger | CronTrigger, now: datetime) -> datetime:
    if isinstance(trigger, ScheduledTrigger):
        return trigger.date
    if isinstance(trigger, DelayedTrigger):
        return now + timedelta(seconds=trigger.delay_in_seconds)
    return next_cron_run(trigger.cron, now)


def next_cron_run(expression: str, after: datetime) -> datetime:
    next_run = croniter(expression, after).get_next(datetime)
    if next_run <= after:
        next_run = croniter(expression, after + timedelta(seconds=1)).get_next(datetime)
    return next_run


def _row_to_task(row: dict[str, Any]) -> ScheduledTask:
    return ScheduledTask(
        id=row["id"],
        conversation_id=row["conversation_id"],
        callback=row["callback"],
        payload=row["payload"],
        trigger_type=row["trigger_type"],
        trigger_value=row["trigger_value"],
        next_run_at=datetime.fromisoformat(row["next_run_at"]),
        status=row["status"],
    )
