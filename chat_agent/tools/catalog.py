"""Default tool set exposed to the model."""

from __future__ import annotations

from chat_agent.db import Database
from chat_agent.schedule_bridge import SchedulerBridge
from chat_agent.tools.base import Execution
from chat_agent.tools.email_tool import ComposeEmailTool
from chat_agent.tools.registry import ToolRegistry
from chat_agent.tools.schedule_tools import (
    CancelAllScheduledTasksTool,
    CancelScheduledTaskTool,
    GetScheduledTasksTool,
    ScheduleTaskTool,
)
from chat_agent.tools.time_tool import GetLocalTimeTool
from chat_agent.tools.weather_tool import GetWeatherInformationTool, get_weather_information


def build_tool_registry(db: Database | None, bridge: SchedulerBridge) -> ToolRegistry:
    registry = ToolRegistry(db)
    registry.register(GetWeatherInformationTool())
    registry.register(GetLocalTimeTool())
    registry.register(ScheduleTaskTool(bridge))
    registry.register(GetScheduledTasksTool(bridge))
    registry.register(CancelScheduledTaskTool(bridge))
    registry.register(CancelAllScheduledTasksTool(bridge))
    registry.register(ComposeEmailTool())
    return registry


def build_executions() -> dict[str, Execution]:
    """Implementations of the tools that wait for human confirmation."""

    return {
        GetWeatherInformationTool.name: get_weather_information,
    }
