"""Tests for OpenRouterProvider streaming."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from chat_agent.config import Settings
from chat_agent.llm.openrouter import OpenRouterProvider

_REAL_ASYNC_CLIENT = httpx.AsyncClient


def _settings() -> Settings:
    return Settings(OPENROUTER_API_KEY="test-key", OPENROUTER_MODEL="test-model")


def _sse(*events: dict) -> bytes:
    lines = [f"data: {json.dumps(event)}\n\n" for event in events]
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def _client_factory(handler):
    def factory(**kwargs):
        return _REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    return factory


async def _drain(provider: OpenRouterProvider, tools=None) -> list:
    return [chunk async for chunk in provider.stream([{"role": "user", "content": "hi"}], tools=tools)]


@pytest.mark.asyncio
async def test_stream_yields_text_deltas_then_final_chunk():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        body = _sse(
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
            {"choices": [{"delta": {}, "finish_reason": "stop"}]},
        )
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    with patch("chat_agent.llm.openrouter.httpx.AsyncClient", side_effect=_client_factory(handler)):
        chunks = await _drain(OpenRouterProvider(_settings()))

    assert [c.text for c in chunks[:-1]] == ["Hel", "lo"]
    assert chunks[-1].tool_calls == []
    assert chunks[-1].finish_reason == "stop"
    payload = json.loads(requests[0].content)
    assert payload["stream"] is True
    assert payload["model"] == "test-model"
    assert "tools" not in payload
    assert requests[0].headers["Authorization"] == "Bearer test-key"


@pytest.mark.asyncio
async def test_stream_assembles_fragmented_tool_calls():
    def handler(request: httpx.Request) -> httpx.Response:
        body = _sse(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "call-1", "function": {"name": "scheduleTask", "arguments": '{"descr'}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": 'iption": "call mom"}'}}]}}]},
            {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
        )
        return httpx.Response(200, content=body)

    with patch("chat_agent.llm.openrouter.httpx.AsyncClient", side_effect=_client_factory(handler)):
        chunks = await _drain(OpenRouterProvider(_settings()), tools=[{"type": "function"}])

    final = chunks[-1]
    assert final.finish_reason == "tool_calls"
    assert len(final.tool_calls) == 1
    call = final.tool_calls[0]
    assert call.name == "scheduleTask"
    assert call.call_id == "call-1"
    assert call.arguments == {"description": "call mom"}


@pytest.mark.asyncio
async def test_stream_retries_on_rate_limit():
    responses = iter(
        [
            httpx.Response(429, content=b"slow down"),
            httpx.Response(200, content=_sse({"choices": [{"delta": {"content": "ok"}}]})),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    with patch("chat_agent.llm.openrouter.httpx.AsyncClient", side_effect=_client_factory(handler)), patch(
        "chat_agent.llm.openrouter.asyncio.sleep", new=AsyncMock()
    ) as sleep:
        chunks = await _drain(OpenRouterProvider(_settings()))

    sleep.assert_awaited_once_with(5)
    assert chunks[0].text == "ok"


@pytest.mark.asyncio
async def test_stream_raises_on_server_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, content=b"boom")

    with patch("chat_agent.llm.openrouter.httpx.AsyncClient", side_effect=_client_factory(handler)):
        with pytest.raises(httpx.HTTPStatusError):
            await _drain(OpenRouterProvider(_settings()))
