"""LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from chat_agent.models import LLMStreamChunk


class LLMProvider(ABC):
    """Abstract model provider used by the agent runtime."""

    @abstractmethod
    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[LLMStreamChunk]:
        """Stream one model step: text deltas, then a final chunk carrying any tool calls."""
