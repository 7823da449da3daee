"""Tools for creating, listing and cancelling scheduled reminders."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chat_agent.models import ScheduleTrigger
from chat_agent.schedule_bridge import SchedulerBridge
from chat_agent.tools.base import AutoTool


class ScheduleTaskInput(BaseModel):
    description: str = Field(description="What to remind the user about")
    when: ScheduleTrigger


class EmptyInput(BaseModel):
    pass


class CancelTaskInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(alias="taskId", description="The ID of the task to cancel")


class ScheduleTaskTool(AutoTool):
    name = "scheduleTask"
    description = "A tool to schedule a task to be executed at a later time"
    input_model = ScheduleTaskInput

    def __init__(self, bridge: SchedulerBridge) -> None:
        self._bridge = bridge

    async def run(self, params: ScheduleTaskInput, conversation_id: str) -> str:
        return self._bridge.schedule_task(conversation_id, params.when, params.description)


class GetScheduledTasksTool(AutoTool):
    name = "getScheduledTasks"
    description = "List all tasks that have been scheduled"
    input_model = EmptyInput

    def __init__(self, bridge: SchedulerBridge) -> None:
        self._bridge = bridge

    async def run(self, params: EmptyInput, conversation_id: str) -> list[dict[str, Any]] | str:
        return self._bridge.get_scheduled_tasks(conversation_id)


class CancelScheduledTaskTool(AutoTool):
    name = "cancelScheduledTask"
    description = "Cancel a scheduled task using its ID"
    input_model = CancelTaskInput

    def __init__(self, bridge: SchedulerBridge) -> None:
        self._bridge = bridge

    async def run(self, params: CancelTaskInput, conversation_id: str) -> str:
        return self._bridge.cancel_scheduled_task(params.task_id)


class CancelAllScheduledTasksTool(AutoTool):
    name = "cancelAllScheduledTasks"
    description = "Cancel every task scheduled in this conversation"
    input_model = EmptyInput

    def __init__(self, bridge: SchedulerBridge) -> None:
        self._bridge = bridge

    async def run(self, params: EmptyInput, conversation_id: str) -> str:
        return self._bridge.cancel_all_scheduled_tasks(conversation_id)
