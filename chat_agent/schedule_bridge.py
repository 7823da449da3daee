"""Bridge between scheduling tool calls, the task scheduler and reminder delivery."""

from __future__ import annotations

import logging
from typing import Any

from chat_agent.db import Database
from chat_agent.locks import ConversationLocks
from chat_agent.models import (
    REMINDER_PREFIX,
    CronTrigger,
    DelayedTrigger,
    Message,
    NoScheduleTrigger,
    ScheduledTask,
    ScheduledTrigger,
    TextPart,
    utc_now,
)
from chat_agent.scheduler import TaskScheduler

LOGGER = logging.getLogger(__name__)

REMINDER_CALLBACK = "execute_reminder"
NO_TASKS_MESSAGE = "No scheduled tasks found."
INVALID_SCHEDULE_MESSAGE = "Not a valid schedule input"

Trigger = ScheduledTrigger | DelayedTrigger | CronTrigger | NoScheduleTrigger


class SchedulerBridge:
    """Turns scheduling tool calls into scheduler commands and delivers reminders.

    Every public method returns text meant for the model; none of them raise
    on scheduler or storage failures.
    """

    def __init__(self, db: Database, scheduler: TaskScheduler, locks: ConversationLocks) -> None:
        self._db = db
        self._scheduler = scheduler
        self._locks = locks
        scheduler.register_callback(REMINDER_CALLBACK, self.on_task_fire)

    def schedule_task(self, conversation_id: str, when: Trigger, description: str) -> str:
        if isinstance(when, NoScheduleTrigger):
            return INVALID_SCHEDULE_MESSAGE
        try:
            task = self._scheduler.create(conversation_id, when, REMINDER_CALLBACK, description)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Error scheduling task for %s: %s", conversation_id, exc)
            return f"Error scheduling task: {exc}"
        return f'Task scheduled for type "{when.type}" : {when.normalized()} (id: {task.id})'

    def get_scheduled_tasks(self, conversation_id: str) -> list[dict[str, Any]] | str:
        try:
            tasks = self._scheduler.list_tasks(conversation_id)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Error listing scheduled tasks for %s: %s", conversation_id, exc)
            return f"Error listing scheduled tasks: {exc}"
        if not tasks:
            return NO_TASKS_MESSAGE
        return [task.summary() for task in tasks]

    def cancel_scheduled_task(self, task_id: str) -> str:
        try:
            removed = self._scheduler.cancel(task_id)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Error canceling scheduled task %s: %s", task_id, exc)
            return f"Error canceling task {task_id}: {exc}"
        if not removed:
            return f"Error canceling task {task_id}: no such task (it may have already run or been canceled)"
        return f"Task {task_id} has been successfully canceled."

    def cancel_all_scheduled_tasks(self, conversation_id: str) -> str:
        try:
            tasks = self._scheduler.list_tasks(conversation_id)
            cancelled = sum(1 for task in tasks if self._scheduler.cancel(task.id))
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Error canceling all tasks for %s: %s", conversation_id, exc)
            return f"Error canceling scheduled tasks: {exc}"
        if cancelled == 0:
            return NO_TASKS_MESSAGE
        return f"Canceled {cancelled} scheduled task(s)."

    async def on_task_fire(self, description: str, task: ScheduledTask) -> None:
        """Deliver a reminder, or reap the task if its conversation is gone."""

        async with self._locks.for_conversation(task.conversation_id):
            messages = self._db.load_messages(task.conversation_id)
            if not messages:
                LOGGER.info("Skipping and cancelling orphaned reminder for deleted conversation %s", task.conversation_id)
                try:
                    if self._scheduler.cancel(task.id):
                        LOGGER.info("Cancelled orphaned reminder task: %s", task.id)
                    else:
                        LOGGER.warning("Orphaned reminder task %s was already gone", task.id)
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Failed to cancel orphaned reminder task %s", task.id)
                return

            reminder = Message(
                role="assistant",
                parts=[TextPart(text=f"{REMINDER_PREFIX} {description}")],
                metadata={"createdAt": utc_now().isoformat(), "isReminder": True},
            )
            self._db.replace_messages(task.conversation_id, [*messages, reminder])
            LOGGER.info("Delivered reminder %s to conversation %s", task.id, task.conversation_id)
