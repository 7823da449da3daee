"""Application entrypoint."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from chat_agent.agent_runtime import ChatAgent
from chat_agent.api import create_app
from chat_agent.config import Settings, load_settings
from chat_agent.db import Database
from chat_agent.llm.openrouter import OpenRouterProvider
from chat_agent.locks import ConversationLocks
from chat_agent.schedule_bridge import SchedulerBridge
from chat_agent.scheduler import TaskScheduler
from chat_agent.tools.catalog import build_executions, build_tool_registry

LOGGER = logging.getLogger(__name__)


def build_app(settings: Settings) -> FastAPI:
    """Initialize app layers and return the HTTP application."""

    db = Database(settings.database_path)
    db.initialize()

    locks = ConversationLocks()
    scheduler = TaskScheduler(db=db, poll_interval_seconds=settings.scheduler_poll_interval_seconds)
    bridge = SchedulerBridge(db=db, scheduler=scheduler, locks=locks)

    agent = ChatAgent(
        db=db,
        llm=OpenRouterProvider(settings),
        tool_registry=build_tool_registry(db, bridge),
        executions=build_executions(),
        locks=locks,
        max_steps=settings.max_tool_steps,
    )
    return create_app(settings, db, agent, scheduler, locks)


def main() -> None:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level.upper())
    LOGGER.info("Starting chat agent on %s:%d", settings.host, settings.port)
    uvicorn.run(build_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
