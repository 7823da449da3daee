from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from chat_agent.db import Database
from chat_agent.locks import ConversationLocks
from chat_agent.models import CronTrigger, DelayedTrigger, Message, NoScheduleTrigger, TextPart
from chat_agent.schedule_bridge import (
    INVALID_SCHEDULE_MESSAGE,
    NO_TASKS_MESSAGE,
    REMINDER_CALLBACK,
    SchedulerBridge,
)
from chat_agent.scheduler import TaskScheduler


def _setup(tmp_path) -> tuple[Database, TaskScheduler, SchedulerBridge]:
    db = Database(tmp_path / "chat_agent.db")
    db.initialize()
    scheduler = TaskScheduler(db=db)
    bridge = SchedulerBridge(db=db, scheduler=scheduler, locks=ConversationLocks())
    return db, scheduler, bridge


def _seed(db: Database, conversation_id: str = "conv-1") -> None:
    db.replace_messages(conversation_id, [Message(role="user", parts=[TextPart(text="remind me to call mom")])])


def test_no_schedule_returns_error_text_without_creating(tmp_path):
    db = Database(tmp_path / "chat_agent.db")
    db.initialize()
    scheduler = MagicMock()
    bridge = SchedulerBridge(db=db, scheduler=scheduler, locks=ConversationLocks())

    result = bridge.schedule_task("conv-1", NoScheduleTrigger(), "call mom")

    assert result == INVALID_SCHEDULE_MESSAGE
    scheduler.create.assert_not_called()


def test_schedule_task_reports_type_and_normalized_trigger(tmp_path):
    _, scheduler, bridge = _setup(tmp_path)

    result = bridge.schedule_task("conv-1", DelayedTrigger(delay_in_seconds=10), "call mom")

    tasks = scheduler.list_tasks("conv-1")
    assert len(tasks) == 1
    assert result.startswith('Task scheduled for type "delayed" : 10')
    assert tasks[0].id in result
    assert tasks[0].callback == REMINDER_CALLBACK


def test_schedule_task_infrastructure_failure_is_text(tmp_path):
    db = Database(tmp_path / "chat_agent.db")
    db.initialize()
    scheduler = MagicMock()
    scheduler.create.side_effect = RuntimeError("database is locked")
    bridge = SchedulerBridge(db=db, scheduler=scheduler, locks=ConversationLocks())

    result = bridge.schedule_task("conv-1", CronTrigger(cron="0 9 * * *"), "standup")

    assert result == "Error scheduling task: database is locked"


def test_get_scheduled_tasks(tmp_path):
    _, _, bridge = _setup(tmp_path)
    assert bridge.get_scheduled_tasks("conv-1") == NO_TASKS_MESSAGE

    bridge.schedule_task("conv-1", CronTrigger(cron="0 9 * * 1"), "weekly review")
    bridge.schedule_task("conv-2", DelayedTrigger(delay_in_seconds=5), "other conversation")

    tasks = bridge.get_scheduled_tasks("conv-1")
    assert len(tasks) == 1
    assert tasks[0]["description"] == "weekly review"
    assert tasks[0]["type"] == "cron"
    assert tasks[0]["trigger"] == "0 9 * * 1"


def test_cancel_scheduled_task_is_soft_for_unknown_ids(tmp_path):
    _, scheduler, bridge = _setup(tmp_path)
    bridge.schedule_task("conv-1", DelayedTrigger(delay_in_seconds=60), "call mom")
    task_id = scheduler.list_tasks("conv-1")[0].id

    assert bridge.cancel_scheduled_task(task_id) == f"Task {task_id} has been successfully canceled."
    second = bridge.cancel_scheduled_task(task_id)
    assert second.startswith(f"Error canceling task {task_id}")


def test_cancel_all_scheduled_tasks(tmp_path):
    _, scheduler, bridge = _setup(tmp_path)
    bridge.schedule_task("conv-1", DelayedTrigger(delay_in_seconds=60), "a")
    bridge.schedule_task("conv-1", DelayedTrigger(delay_in_seconds=120), "b")
    bridge.schedule_task("conv-2", DelayedTrigger(delay_in_seconds=60), "c")

    assert bridge.cancel_all_scheduled_tasks("conv-1") == "Canceled 2 scheduled task(s)."
    assert scheduler.list_tasks("conv-1") == []
    assert len(scheduler.list_tasks("conv-2")) == 1
    assert bridge.cancel_all_scheduled_tasks("conv-1") == NO_TASKS_MESSAGE


@pytest.mark.asyncio
async def test_fire_appends_assistant_reminder(tmp_path):
    db, scheduler, bridge = _setup(tmp_path)
    _seed(db)
    task = scheduler.create("conv-1", DelayedTrigger(delay_in_seconds=10), REMINDER_CALLBACK, "call mom")

    await bridge.on_task_fire("call mom", task)

    messages = db.load_messages("conv-1")
    assert len(messages) == 2
    reminder = messages[-1]
    assert reminder.role == "assistant"
    assert reminder.text == "Reminder: call mom"
    assert reminder.metadata["isReminder"] is True
    assert "createdAt" in reminder.metadata


@pytest.mark.asyncio
async def test_duplicate_fire_appends_again(tmp_path):
    db, scheduler, bridge = _setup(tmp_path)
    _seed(db)
    task = scheduler.create("conv-1", DelayedTrigger(delay_in_seconds=10), REMINDER_CALLBACK, "call mom")

    await bridge.on_task_fire("call mom", task)
    await bridge.on_task_fire("call mom", task)

    assert [m.text for m in db.load_messages("conv-1")][1:] == ["Reminder: call mom", "Reminder: call mom"]


@pytest.mark.asyncio
async def test_orphaned_fire_cancels_task_and_appends_nothing(tmp_path):
    db, scheduler, bridge = _setup(tmp_path)
    task = scheduler.create("conv-1", CronTrigger(cron="0 9 * * *"), REMINDER_CALLBACK, "standup")
    scheduler.cancel = MagicMock(wraps=scheduler.cancel)

    await bridge.on_task_fire("standup", task)

    scheduler.cancel.assert_called_once_with(task.id)
    assert db.load_messages("conv-1") == []
    assert scheduler.get(task.id) is None


@pytest.mark.asyncio
async def test_orphan_cleanup_failure_does_not_raise(tmp_path):
    db, scheduler, bridge = _setup(tmp_path)
    task = scheduler.create("conv-1", DelayedTrigger(delay_in_seconds=1), REMINDER_CALLBACK, "x")
    scheduler.cancel = MagicMock(side_effect=RuntimeError("scheduler unavailable"))

    await bridge.on_task_fire("x", task)

    assert db.load_messages("conv-1") == []


@pytest.mark.asyncio
async def test_scheduler_dispatches_reminders_through_bridge(tmp_path):
    db, scheduler, _ = _setup(tmp_path)
    _seed(db)
    now = datetime.now(timezone.utc)
    scheduler.create("conv-1", DelayedTrigger(delay_in_seconds=10), REMINDER_CALLBACK, "call mom", now=now)

    await scheduler.run_pending(now + timedelta(seconds=10))

    assert db.load_messages("conv-1")[-1].text == "Reminder: call mom"
    assert scheduler.list_tasks("conv-1") == []
