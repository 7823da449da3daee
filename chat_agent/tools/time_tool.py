"""Local time tool."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from chat_agent.tools.base import AutoTool


class LocalTimeInput(BaseModel):
    location: str = Field(description="IANA timezone (e.g., 'America/New_York', 'Europe/London')")


class GetLocalTimeTool(AutoTool):
    """Returns the current time in an IANA timezone."""

    name = "getLocalTime"
    description = "get the local time for a specified location or timezone"
    input_model = LocalTimeInput

    async def run(self, params: LocalTimeInput, conversation_id: str) -> str:
        return local_time_for(params.location)


def local_time_for(location: str, now: datetime | None = None) -> str:
    if not location or not location.strip():
        raise ValueError("Location cannot be empty")

    normalized = location.strip()
    try:
        zone = ZoneInfo(normalized)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(
            f'"{normalized}" is not a valid timezone or location. '
            'Please use a valid IANA timezone (e.g., "America/New_York", "Asia/Tokyo").'
        ) from exc

    local = (now or datetime.now(zone)).astimezone(zone)
    formatted = local.strftime("%A, %B %d, %Y at %I:%M:%S %p %Z")
    return f"Local time in {normalized}: {formatted}"
