"""Core agent runtime."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Mapping, Sequence

from chat_agent.db import Database
from chat_agent.llm.base import LLMProvider
from chat_agent.llm.conversion import to_model_messages
from chat_agent.locks import ConversationLocks
from chat_agent.models import Message, MessagePart, TextPart, ToolCallPart, generate_id, utc_now
from chat_agent.resolution import resolve
from chat_agent.sanitizer import sanitize
from chat_agent.tools.base import Execution
from chat_agent.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

StreamEvent = dict[str, Any]


class ChatAgent:
    """Conversation-isolated runtime orchestrating transcript, tools, and model calls."""

    def __init__(
        self,
        db: Database,
        llm: LLMProvider,
        tool_registry: ToolRegistry,
        executions: Mapping[str, Execution],
        locks: ConversationLocks,
        max_steps: int = 10,
    ) -> None:
        self._db = db
        self._llm = llm
        self._tool_registry = tool_registry
        self._executions = executions
        self._locks = locks
        self._max_steps = max_steps

    async def stream_chat(self, conversation_id: str, message: Message | None = None) -> AsyncIterator[StreamEvent]:
        """Run one turn and yield UI stream events as they are produced.

        The inbound message and any confirmation results are committed before
        the model is called. The new assistant message is committed only when
        the turn completes; a transport error or a closed stream discards it.
        """

        async with self._locks.for_conversation(conversation_id):
            stored = self._db.load_messages(conversation_id)
            transcript = [*stored, message] if message is not None else stored

            cleaned = sanitize(transcript)
            resolved = await resolve(cleaned, self._tool_registry, self._executions, conversation_id)
            for part in _newly_resolved(cleaned, resolved):
                yield _tool_output_event(part)
            if resolved != stored:
                self._db.replace_messages(conversation_id, resolved)

            assistant_id = generate_id()
            yield {"type": "start", "messageId": assistant_id}
            parts: list[MessagePart] = []
            # A reminder is a notification; answering it must never schedule anything.
            tools = None if _ends_with_reminder(resolved) else self._tool_registry.list_tool_specs()

            try:
                for _ in range(self._max_steps):
                    draft = Message(id=assistant_id, role="assistant", parts=list(parts))
                    model_messages = [
                        {"role": "system", "content": build_system_prompt(datetime.now(timezone.utc))},
                        *to_model_messages([*resolved, draft]),
                    ]
                    text = ""
                    tool_calls = []
                    async for chunk in self._llm.stream(model_messages, tools=tools):
                        if chunk.text:
                            text += chunk.text
                            yield {"type": "text-delta", "id": assistant_id, "delta": chunk.text}
                        if chunk.tool_calls:
                            tool_calls = chunk.tool_calls
                    if text:
                        parts.append(TextPart(text=text))
                    if not tool_calls:
                        break
                    if tools is None:
                        LOGGER.warning("Ignoring %d tool call(s) made while answering a reminder", len(tool_calls))
                        break

                    awaiting_confirmation = False
                    for call in tool_calls:
                        part = ToolCallPart(
                            tool_call_id=call.call_id or generate_id(),
                            tool_name=call.name,
                            input=call.arguments,
                        )
                        yield {
                            "type": "tool-input-available",
                            "toolCallId": part.tool_call_id,
                            "toolName": part.tool_name,
                            "input": part.input,
                        }
                        if self._tool_registry.requires_confirmation(part.tool_name):
                            awaiting_confirmation = True
                        else:
                            part = await self._run_auto_tool(conversation_id, part)
                            yield _tool_output_event(part)
                        parts.append(part)
                    if awaiting_confirmation:
                        break
                else:
                    LOGGER.warning("Reached step limit (%d) for conversation %s", self._max_steps, conversation_id)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Model stream failed for conversation %s", conversation_id)
                yield {"type": "error", "errorText": f"The assistant could not complete this turn: {exc}"}
                return

            if parts:
                final = Message(
                    id=assistant_id,
                    role="assistant",
                    parts=parts,
                    metadata={"createdAt": utc_now().isoformat()},
                )
                self._db.replace_messages(conversation_id, [*resolved, final])
            yield {"type": "finish", "messageId": assistant_id}

    async def _run_auto_tool(self, conversation_id: str, part: ToolCallPart) -> ToolCallPart:
        if not self._tool_registry.has_tool(part.tool_name):
            LOGGER.warning("Model called unknown tool %r", part.tool_name)
            return part.with_error(f"Unknown tool: {part.tool_name}")
        try:
            output = await self._tool_registry.execute(conversation_id, part.tool_name, part.input)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Tool %r failed for call %s: %s", part.tool_name, part.tool_call_id, exc)
            return part.with_error(str(exc) or exc.__class__.__name__)
        return part.with_output(output)


def build_system_prompt(now: datetime) -> str:
    return (
        "You are a helpful and friendly personal assistant that can do various tasks.\n\n"
        "CRITICAL TOOL USAGE INSTRUCTIONS:\n"
        "- Use tools automatically when the user asks for information that requires them. "
        "Try to use provided tools to complete the user's request as much as possible.\n"
        "- When a tool call is needed, call the tool directly, then return tool results to the user. "
        "Do NOT show tool call parameters JSON to the user.\n"
        "- If a tool fails, fix the issue and retry next time.\n\n"
        f"The current date and time is {now.isoformat()} (UTC).\n"
        "When scheduling, build the `when` argument of scheduleTask as one of:\n"
        '- {"type": "scheduled", "date": "<ISO-8601 date-time>"} for a specific moment;\n'
        '- {"type": "delayed", "delayInSeconds": <seconds>} for "in N minutes/seconds";\n'
        '- {"type": "cron", "cron": "<five-field cron expression>"} for recurring tasks;\n'
        '- {"type": "no-schedule"} if no time can be determined.\n\n'
        "- When users ask to set a reminder or schedule something, use the scheduleTask tool.\n"
        "- When users ask to list reminders or tasks, call getScheduledTasks.\n"
        "- When users ask to cancel a reminder, use cancelScheduledTask or cancelAllScheduledTasks.\n"
        '- IMPORTANT: Messages starting with "Reminder:" are SYSTEM-GENERATED notifications from '
        "previously scheduled tasks. NEVER use any tools when you see these messages. "
        "Do not respond to them as if they were user requests.\n"
        "- Call scheduleTask only once per user request. Do not create duplicate reminders."
    )


def _ends_with_reminder(messages: Sequence[Message]) -> bool:
    return bool(messages) and messages[-1].is_reminder


def _newly_resolved(before: Sequence[Message], after: Sequence[Message]) -> list[ToolCallPart]:
    pending = {part.tool_call_id for message in before for part in message.tool_calls if part.is_pending}
    return [
        part
        for message in after
        for part in message.tool_calls
        if part.tool_call_id in pending and not part.is_pending
    ]


def _tool_output_event(part: ToolCallPart) -> StreamEvent:
    if part.state == "output-error":
        return {"type": "tool-output-error", "toolCallId": part.tool_call_id, "errorText": part.error_text}
    return {"type": "tool-output-available", "toolCallId": part.tool_call_id, "output": part.output}
