"""Registry for safe tool registration and execution."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError

from chat_agent.db import Database
from chat_agent.tools.base import AutoTool, ConfirmTool, Execution, Tool


class ToolRegistry:
    """Explicit registry of safe tools, keyed by name."""

    def __init__(self, db: Database | None = None) -> None:
        self._db = db
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def requires_confirmation(self, name: str) -> bool:
        return isinstance(self._tools.get(name), ConfirmTool)

    def list_tool_specs(self) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters_schema,
                },
            }
            for tool in self._tools.values()
        ]

    def parse_input(self, tool_name: str, arguments: dict[str, Any]) -> BaseModel:
        tool = self._tools.get(tool_name)
        if tool is None:
            raise KeyError(f"Unknown tool: {tool_name}")
        try:
            return tool.input_model.model_validate(arguments)
        except ValidationError as exc:
            raise ValueError(f"Invalid input for tool {tool_name}: {exc}") from exc

    async def execute(self, conversation_id: str, tool_name: str, arguments: dict[str, Any]) -> Any:
        """Validate and run an auto-executing tool."""

        tool = self._tools.get(tool_name)
        if tool is None:
            raise KeyError(f"Unknown tool: {tool_name}")
        if not isinstance(tool, AutoTool):
            raise ValueError(f"Tool {tool_name} requires confirmation before it can run")

        params = self.parse_input(tool_name, arguments)
        return await self._run_logged(conversation_id, tool_name, params, tool.run(params, conversation_id))

    async def execute_confirmed(
        self,
        conversation_id: str,
        tool_name: str,
        arguments: dict[str, Any],
        execution: Execution,
    ) -> Any:
        """Validate input and run the approved implementation of a confirmation tool."""

        params = self.parse_input(tool_name, arguments)
        return await self._run_logged(conversation_id, tool_name, params, execution(params))

    async def _run_logged(self, conversation_id: str, tool_name: str, params: BaseModel, pending: Any) -> Any:
        validated = params.model_dump(mode="json", by_alias=True)
        try:
            result = await pending
        except Exception as exc:  # noqa: BLE001
            if self._db is not None:
                self._db.log_tool_execution(conversation_id, tool_name, validated, {"error": str(exc)}, succeeded=False)
            raise
        if self._db is not None:
            self._db.log_tool_execution(conversation_id, tool_name, validated, result, succeeded=True)
        return result
