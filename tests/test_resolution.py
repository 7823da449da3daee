from unittest.mock import AsyncMock

import pytest

from chat_agent.models import ConfirmationPart, Message, TextPart, ToolCallPart
from chat_agent.resolution import DECLINED_MESSAGE, resolve
from chat_agent.tools.registry import ToolRegistry
from chat_agent.tools.time_tool import GetLocalTimeTool
from chat_agent.tools.weather_tool import GetWeatherInformationTool, WeatherInput


def _registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(GetWeatherInformationTool())
    registry.register(GetLocalTimeTool())
    return registry


def _weather_call(call_id: str = "c1", city: str = "Paris") -> Message:
    return Message(
        role="assistant",
        parts=[
            TextPart(text="I need your permission."),
            ToolCallPart(tool_call_id=call_id, tool_name="getWeatherInformation", input={"city": city}),
        ],
    )


def _answer(call_id: str, approved: bool) -> Message:
    return Message(role="user", parts=[ConfirmationPart(tool_call_id=call_id, approved=approved)])


def _user(text: str) -> Message:
    return Message(role="user", parts=[TextPart(text=text)])


@pytest.mark.asyncio
async def test_rejection_attaches_denial_without_running_tool():
    execution = AsyncMock(return_value="sunny")
    messages = [_user("weather in paris?"), _weather_call(), _answer("c1", approved=False)]

    resolved = await resolve(messages, _registry(), {"getWeatherInformation": execution})

    part = resolved[1].tool_calls[0]
    assert part.state == "output-error"
    assert part.error_text == DECLINED_MESSAGE
    execution.assert_not_called()


@pytest.mark.asyncio
async def test_approval_runs_execution_once_with_validated_input():
    execution = AsyncMock(return_value="The weather in Paris is sunny")
    messages = [_user("weather in paris?"), _weather_call(), _answer("c1", approved=True)]

    resolved = await resolve(messages, _registry(), {"getWeatherInformation": execution})

    execution.assert_awaited_once_with(WeatherInput(city="Paris"))
    part = resolved[1].tool_calls[0]
    assert part.state == "output-available"
    assert part.output == "The weather in Paris is sunny"


@pytest.mark.asyncio
async def test_unanswered_call_stays_pending():
    execution = AsyncMock()
    messages = [_user("weather in paris?"), _weather_call(), _user("hold on")]

    resolved = await resolve(messages, _registry(), {"getWeatherInformation": execution})

    assert resolved == messages
    assert resolved[1].tool_calls[0].state == "input-available"
    execution.assert_not_called()


@pytest.mark.asyncio
async def test_failing_execution_becomes_output_error():
    execution = AsyncMock(side_effect=[RuntimeError("weather service down"), "The weather in Rome is sunny"])
    messages = [_weather_call("c1"), _weather_call("c2", city="Rome"), _answer("c1", True), _answer("c2", True)]

    resolved = await resolve(messages, _registry(), {"getWeatherInformation": execution})

    first, second = resolved[0].tool_calls[0], resolved[1].tool_calls[0]
    assert first.state == "output-error"
    assert "weather service down" in first.error_text
    assert second.state == "output-available"
    assert second.output == "The weather in Rome is sunny"


@pytest.mark.asyncio
async def test_invalid_input_is_contained():
    execution = AsyncMock()
    bad_call = Message(
        role="assistant",
        parts=[ToolCallPart(tool_call_id="c1", tool_name="getWeatherInformation", input={"town": "Paris"})],
    )

    resolved = await resolve([bad_call, _answer("c1", True)], _registry(), {"getWeatherInformation": execution})

    assert resolved[0].tool_calls[0].state == "output-error"
    execution.assert_not_called()


@pytest.mark.asyncio
async def test_auto_tool_without_result_is_left_unresolved():
    call = Message(
        role="assistant",
        parts=[ToolCallPart(tool_call_id="c1", tool_name="getLocalTime", input={"location": "UTC"})],
    )

    resolved = await resolve([call, _answer("c1", True)], _registry(), {})

    assert resolved[0].tool_calls[0].state == "input-available"


@pytest.mark.asyncio
async def test_approved_call_without_implementation_stays_pending():
    messages = [_user("weather in paris?"), _weather_call(), _answer("c1", approved=True)]

    resolved = await resolve(messages, _registry(), {})

    part = resolved[1].tool_calls[0]
    assert part.state == "input-available"
    assert part.error_text is None
    assert resolved[1] is messages[1]


@pytest.mark.asyncio
async def test_answer_before_the_call_is_ignored():
    execution = AsyncMock(return_value="sunny")
    messages = [_answer("c1", True), _weather_call("c1")]

    resolved = await resolve(messages, _registry(), {"getWeatherInformation": execution})

    assert resolved[1].tool_calls[0].state == "input-available"
    execution.assert_not_called()


@pytest.mark.asyncio
async def test_untouched_messages_keep_identity_and_input_is_not_mutated():
    execution = AsyncMock(return_value="sunny")
    messages = [_user("hi"), _weather_call(), _answer("c1", True)]
    snapshot = [m.model_copy(deep=True) for m in messages]

    resolved = await resolve(messages, _registry(), {"getWeatherInformation": execution})

    assert resolved[0] is messages[0]
    assert resolved[2] is messages[2]
    assert resolved[1].id == messages[1].id
    assert resolved[1].parts[0] == messages[1].parts[0]
    assert messages == snapshot


@pytest.mark.asyncio
async def test_already_resolved_calls_are_not_rerun():
    execution = AsyncMock(return_value="sunny")
    done = Message(
        role="assistant",
        parts=[
            ToolCallPart(
                tool_call_id="c1",
                tool_name="getWeatherInformation",
                input={"city": "Paris"},
                state="output-available",
                output="sunny",
            )
        ],
    )

    await resolve([done, _answer("c1", True)], _registry(), {"getWeatherInformation": execution})

    execution.assert_not_called()
