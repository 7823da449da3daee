"""OpenRouter implementation of LLMProvider."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

import httpx

from chat_agent.config import Settings
from chat_agent.llm.base import LLMProvider
from chat_agent.models import LLMStreamChunk, LLMToolCall

_LOGGER = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_BACKOFF_SECONDS = [5, 15, 45]


class OpenRouterProvider(LLMProvider):
    """LLM provider using OpenRouter's OpenAI-compatible streaming chat endpoint."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[LLMStreamChunk]:
        payload: dict[str, Any] = {
            "model": self._settings.openrouter_model,
            "messages": messages,
            "stream": True,
        }
        if tools:
            payload["tools"] = tools

        timeout = httpx.Timeout(self._settings.request_timeout_seconds)
        async with httpx.AsyncClient(base_url=self._settings.openrouter_base_url, timeout=timeout) as client:
            for attempt in range(_MAX_RETRIES + 1):
                async with client.stream(
                    "POST",
                    "/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self._settings.openrouter_api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                ) as response:
                    if response.status_code == 429 and attempt < _MAX_RETRIES:
                        wait = _RETRY_BACKOFF_SECONDS[attempt]
                        _LOGGER.warning(
                            "OpenRouter rate limited (429), retrying in %ds (attempt %d/%d)",
                            wait,
                            attempt + 1,
                            _MAX_RETRIES,
                        )
                        await asyncio.sleep(wait)
                        continue
                    if response.is_error:
                        await response.aread()
                    response.raise_for_status()

                    assembler = _ToolCallAssembler()
                    finish_reason = None
                    async for event in _iter_sse_events(response):
                        choices = event.get("choices") or []
                        if not choices:
                            continue
                        choice = choices[0]
                        delta = choice.get("delta") or {}
                        if delta.get("content"):
                            yield LLMStreamChunk(text=delta["content"])
                        assembler.add(delta.get("tool_calls") or [])
                        if choice.get("finish_reason"):
                            finish_reason = choice["finish_reason"]

                    tool_calls = assembler.build()
                    _LOGGER.info("LLM step finished: finish_reason=%r tool_calls=%r", finish_reason, tool_calls)
                    yield LLMStreamChunk(tool_calls=tool_calls, finish_reason=finish_reason)
                    return


class _ToolCallAssembler:
    """Accumulates tool call fragments streamed across many deltas."""

    def __init__(self) -> None:
        self._slots: dict[int, dict[str, str]] = {}

    def add(self, fragments: list[dict[str, Any]]) -> None:
        for fragment in fragments:
            slot = self._slots.setdefault(fragment.get("index", 0), {"id": "", "name": "", "arguments": ""})
            if fragment.get("id"):
                slot["id"] = fragment["id"]
            function_data = fragment.get("function") or {}
            if function_data.get("name"):
                slot["name"] += function_data["name"]
            if function_data.get("arguments"):
                slot["arguments"] += function_data["arguments"]

    def build(self) -> list[LLMToolCall]:
        return [
            LLMToolCall(
                name=slot["name"],
                arguments=_safe_json_loads(slot["arguments"] or "{}"),
                call_id=slot["id"] or None,
            )
            for _, slot in sorted(self._slots.items())
        ]


async def _iter_sse_events(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return
        if data:
            yield _safe_json_loads(data)


def _safe_json_loads(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
