"""Email drafting tool."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, Field

from chat_agent.tools.base import AutoTool


class ComposeEmailInput(BaseModel):
    to: str = Field(description="Recipient email address")
    subject: str = Field(description="Email subject")
    body: str = Field(description="Email body content")


class ComposeEmailTool(AutoTool):
    """Drafts an email; the UI renders the preview and opens the mailto link."""

    name = "composeEmail"
    description = "draft an email with given subject and recipient"
    input_model = ComposeEmailInput

    async def run(self, params: ComposeEmailInput, conversation_id: str) -> dict[str, Any]:
        return {
            "preview": {
                "to": params.to,
                "subject": params.subject,
                "body": params.body,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "mailto": mailto_link(params.to, params.subject, params.body),
            }
        }


def mailto_link(to: str, subject: str, body: str) -> str:
    return f"mailto:{to}?subject={quote(subject, safe='')}&body={quote(body, safe='')}"
