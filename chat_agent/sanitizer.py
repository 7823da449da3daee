"""Transcript cleanup before a model turn."""

from __future__ import annotations

import logging
from typing import Sequence

from chat_agent.models import Message

LOGGER = logging.getLogger(__name__)


def sanitize(messages: Sequence[Message]) -> list[Message]:
    """Drop the trailing assistant message that still has calls without results.

    Such a message is left behind when a turn dies between the model emitting a
    call and the result being attached. Only the tail is inspected; dangling
    calls further back are historical and kept as is. If removing the tail
    exposes another dangling assistant message it goes too, so that applying
    the function twice gives the same result. The input is never mutated.
    """

    cleaned = list(messages)
    while cleaned and _has_dangling_calls(cleaned[-1]):
        dropped = cleaned.pop()
        LOGGER.info("Dropping trailing assistant message %s with unresolved tool calls", dropped.id)
    return cleaned


def _has_dangling_calls(message: Message) -> bool:
    return message.role == "assistant" and any(part.is_pending for part in message.tool_calls)
