"""HTTP routes: per-conversation chat streaming, history, and the model binding probe."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator

from fastapi import APIRouter, FastAPI
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from chat_agent.agent_runtime import ChatAgent
from chat_agent.config import Settings, has_model_binding
from chat_agent.db import Database
from chat_agent.locks import ConversationLocks
from chat_agent.models import Message
from chat_agent.scheduler import TaskScheduler

LOGGER = logging.getLogger(__name__)

_TITLE_MAX_CHARS = 50


class ChatRequest(BaseModel):
    """Body of a chat request; omit ``message`` to re-run the turn on the stored transcript."""

    message: Message | None = None


def create_app(
    settings: Settings,
    db: Database,
    agent: ChatAgent,
    scheduler: TaskScheduler,
    locks: ConversationLocks,
) -> FastAPI:
    """Build the FastAPI application; the scheduler loop runs for the app's lifetime."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if not has_model_binding(settings):
            LOGGER.error("OPENROUTER_API_KEY is not set; configure it before chatting")
        scheduler_task = asyncio.create_task(scheduler.run_forever(), name="task-scheduler")
        try:
            yield
        finally:
            scheduler.stop()
            scheduler_task.cancel()
            with suppress(asyncio.CancelledError):
                await scheduler_task
            LOGGER.info("Chat agent shutdown complete")

    app = FastAPI(title="Chat Agent", lifespan=lifespan)
    app.include_router(_build_router(settings, db, agent, locks))
    return app


def _build_router(settings: Settings, db: Database, agent: ChatAgent, locks: ConversationLocks) -> APIRouter:
    router = APIRouter()

    @router.get("/check-ai-binding")
    async def check_ai_binding() -> dict[str, bool]:
        return {"success": has_model_binding(settings)}

    @router.post("/agents/chat/{conversation_id}")
    async def chat(conversation_id: str, req: ChatRequest) -> StreamingResponse:
        # On client disconnect Starlette cancels this generator; closing the
        # agent stream stops the model and skips the final commit.
        async def event_generator() -> AsyncIterator[str]:
            events = agent.stream_chat(conversation_id, req.message)
            try:
                async for event in events:
                    yield f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"
            finally:
                await events.aclose()
            yield "data: [DONE]\n\n"

        return StreamingResponse(event_generator(), media_type="text/event-stream")

    @router.get("/agents/chat/{conversation_id}/messages")
    async def get_messages(conversation_id: str) -> list[dict[str, Any]]:
        return [message.dump() for message in db.load_messages(conversation_id)]

    @router.delete("/agents/chat/{conversation_id}")
    async def delete_conversation(conversation_id: str) -> dict[str, str]:
        # Waits for an in-flight turn so its commit cannot restore the transcript.
        async with locks.for_conversation(conversation_id):
            db.clear_messages(conversation_id)
        return {"status": "ok", "message": "Conversation deleted"}

    @router.get("/conversations")
    async def list_conversations() -> list[dict[str, Any]]:
        return [
            {
                "id": row["conversation_id"],
                "title": _conversation_title(row["first_user_text"]),
                "lastUpdated": row["updated_at"],
            }
            for row in db.list_conversations()
        ]

    return router


def _conversation_title(text: str) -> str:
    text = " ".join(text.split())
    if not text:
        return "New conversation"
    if len(text) <= _TITLE_MAX_CHARS:
        return text
    return text[: _TITLE_MAX_CHARS - 1].rstrip() + "…"
