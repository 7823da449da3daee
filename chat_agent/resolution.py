"""Resolution of tool calls that wait for human confirmation.

A confirmation-required call stays ``input-available`` in the transcript until
the user answers the prompt. The answer arrives as a ``ConfirmationPart`` in a
later message. Each pass first reads every answer from the input snapshot into
a plain mapping, then walks the pending calls in transcript order and rebuilds
only the messages whose parts changed:

- no answer yet: the call is left pending;
- declined: the call gets an ``output-error`` result and nothing runs;
- approved: the implementation from ``executions`` runs once with the
  validated input and its return value becomes the output. A failure becomes
  an ``output-error`` on that call alone.

Pending calls to auto-executing tools should never reach this point, since
their results are attached while the model turn runs. They are logged and left
alone, as are confirmation calls with no entry in ``executions``; if they sit
at the tail the sanitizer removes them on the next turn.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from chat_agent.models import ConfirmationPart, Message, ToolCallPart
from chat_agent.tools.base import Execution
from chat_agent.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

DECLINED_MESSAGE = "User declined execution"

Position = tuple[int, int]


def collect_confirmations(messages: Sequence[Message]) -> dict[str, list[tuple[Position, bool]]]:
    """Map each tool call id to its confirmation answers, in transcript order."""

    signals: dict[str, list[tuple[Position, bool]]] = {}
    for message_index, message in enumerate(messages):
        for part_index, part in enumerate(message.parts):
            if isinstance(part, ConfirmationPart):
                signals.setdefault(part.tool_call_id, []).append(((message_index, part_index), part.approved))
    return signals


def confirmation_for(
    signals: Mapping[str, list[tuple[Position, bool]]],
    tool_call_id: str,
    call_position: Position,
) -> bool | None:
    """First answer given after the call, or None while still unanswered."""

    for position, approved in signals.get(tool_call_id, []):
        if position > call_position:
            return approved
    return None


async def resolve(
    messages: Sequence[Message],
    registry: ToolRegistry,
    executions: Mapping[str, Execution],
    conversation_id: str = "",
) -> list[Message]:
    signals = collect_confirmations(messages)
    resolved: list[Message] = []

    for message_index, message in enumerate(messages):
        new_parts = None
        for part_index, part in enumerate(message.parts):
            if not isinstance(part, ToolCallPart) or not part.is_pending:
                continue
            answer = confirmation_for(signals, part.tool_call_id, (message_index, part_index))
            updated = await _resolve_call(part, answer, registry, executions, conversation_id)
            if updated is not part:
                if new_parts is None:
                    new_parts = list(message.parts)
                new_parts[part_index] = updated
        resolved.append(message if new_parts is None else message.model_copy(update={"parts": new_parts}))

    return resolved


async def _resolve_call(
    part: ToolCallPart,
    answer: bool | None,
    registry: ToolRegistry,
    executions: Mapping[str, Execution],
    conversation_id: str,
) -> ToolCallPart:
    if not registry.has_tool(part.tool_name):
        LOGGER.warning("Pending call %s targets unknown tool %r; leaving it", part.tool_call_id, part.tool_name)
        return part
    if not registry.requires_confirmation(part.tool_name):
        LOGGER.warning(
            "Auto-executing tool %r has no result for call %s; leaving it unresolved",
            part.tool_name,
            part.tool_call_id,
        )
        return part
    execution = executions.get(part.tool_name)
    if execution is None:
        LOGGER.error("No implementation for %r; leaving call %s pending", part.tool_name, part.tool_call_id)
        return part
    if answer is None:
        return part
    if not answer:
        LOGGER.info("User declined %s call %s", part.tool_name, part.tool_call_id)
        return part.with_error(DECLINED_MESSAGE)

    try:
        output = await registry.execute_confirmed(conversation_id, part.tool_name, part.input, execution)
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Approved call %s to %r failed: %s", part.tool_call_id, part.tool_name, exc)
        return part.with_error(str(exc) or exc.__class__.__name__)
    LOGGER.info("Executed approved %s call %s", part.tool_name, part.tool_call_id)
    return part.with_output(output)
