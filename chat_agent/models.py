"""Core domain models used across layers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant", "system"]
ToolCallState = Literal["input-available", "output-available", "output-error"]

REMINDER_PREFIX = "Reminder:"


def generate_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _TranscriptModel(BaseModel):
    """Immutable transcript record serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TextPart(_TranscriptModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallPart(_TranscriptModel):
    """One attempted tool invocation and, once known, its result."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)
    state: ToolCallState = "input-available"
    output: Any = None
    error_text: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.state == "input-available"

    def with_output(self, output: Any) -> ToolCallPart:
        return self.model_copy(update={"state": "output-available", "output": output, "error_text": None})

    def with_error(self, error_text: str) -> ToolCallPart:
        return self.model_copy(update={"state": "output-error", "output": None, "error_text": error_text})


class ConfirmationPart(_TranscriptModel):
    """The human's answer to a confirmation prompt for a pending tool call."""

    type: Literal["confirmation"] = "confirmation"
    tool_call_id: str
    approved: bool


MessagePart = Annotated[Union[TextPart, ToolCallPart, ConfirmationPart], Field(discriminator="type")]


class Message(_TranscriptModel):
    """One transcript entry; parts are ordered and heterogeneous."""

    id: str = Field(default_factory=generate_id)
    role: Role
    parts: list[MessagePart] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [part for part in self.parts if isinstance(part, ToolCallPart)]

    @property
    def is_reminder(self) -> bool:
        if self.role != "assistant":
            return False
        return bool(self.metadata.get("isReminder")) or self.text.startswith(REMINDER_PREFIX)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class _Trigger(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ScheduledTrigger(_Trigger):
    """Fire once at an absolute date/time (naive values are taken as UTC)."""

    type: Literal["scheduled"] = "scheduled"
    date: datetime

    @field_validator("date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def normalized(self) -> str:
        return self.date.astimezone(timezone.utc).isoformat()


class DelayedTrigger(_Trigger):
    """Fire once after a delay in seconds."""

    type: Literal["delayed"] = "delayed"
    delay_in_seconds: int = Field(alias="delayInSeconds", gt=0)

    def normalized(self) -> str:
        return str(self.delay_in_seconds)


class CronTrigger(_Trigger):
    """Fire repeatedly on a five-field cron expression."""

    type: Literal["cron"] = "cron"
    cron: str

    @field_validator("cron")
    @classmethod
    def _valid_cron(cls, value: str) -> str:
        value = value.strip()
        if not croniter.is_valid(value):
            raise ValueError(f"Invalid cron expression: {value!r}")
        return value

    def normalized(self) -> str:
        return self.cron


class NoScheduleTrigger(_Trigger):
    """The model could not extract a schedule from the request."""

    type: Literal["no-schedule"] = "no-schedule"

    def normalized(self) -> str:
        return ""


ScheduleTrigger = Annotated[
    Union[ScheduledTrigger, DelayedTrigger, CronTrigger, NoScheduleTrigger],
    Field(discriminator="type"),
]


@dataclass(slots=True)
class LLMToolCall:
    """Tool invocation returned by an LLM provider."""

    name: str
    arguments: dict[str, Any]
    call_id: str | None = None


@dataclass(slots=True)
class LLMStreamChunk:
    """Incremental piece of a streamed model response.

    Text arrives as deltas; tool calls are only emitted once fully assembled,
    on the final chunk of a step.
    """

    text: str = ""
    tool_calls: list[LLMToolCall] = field(default_factory=list)
    finish_reason: str | None = None


@dataclass(slots=True)
class ScheduledTask:
    """Represents a persisted scheduled task."""

    id: str
    conversation_id: str
    callback: str
    payload: str
    trigger_type: str
    trigger_value: str
    next_run_at: datetime
    status: str

    @property
    def is_recurring(self) -> bool:
        return self.trigger_type == "cron"

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.payload,
            "type": self.trigger_type,
            "trigger": self.trigger_value,
            "nextRunAt": self.next_run_at.isoformat(),
        }
