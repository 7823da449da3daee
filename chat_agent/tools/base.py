"""Tool contracts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

# Implementation of a confirmation-required tool, run only after approval.
Execution = Callable[[BaseModel], Awaitable[Any]]


class Tool(ABC):
    """Base class for all assistant tools."""

    name: str
    description: str
    input_model: type[BaseModel]

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)


class AutoTool(Tool):
    """Tool executed as soon as the model calls it."""

    @abstractmethod
    async def run(self, params: BaseModel, conversation_id: str) -> Any:
        """Execute tool with validated arguments."""


class ConfirmTool(Tool):
    """Tool that waits for human approval.

    It has no ``run``; the approved call is carried out by the matching entry
    in the executions mapping.
    """
