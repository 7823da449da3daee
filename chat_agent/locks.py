"""Per-conversation serialization."""

from __future__ import annotations

import asyncio
import weakref


class ConversationLocks:
    """One asyncio lock per conversation id.

    Chat turns, deletes and reminder callbacks for the same conversation run
    one at a time; different conversations never wait on each other. Locks are
    held weakly and disappear once no holder or waiter references them.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_conversation(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
