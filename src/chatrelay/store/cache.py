"""In-memory read-through cache of session message lists.

Entries expire after ``ttl`` seconds (monotonic clock) and are dropped
explicitly by ``invalidate()`` whenever a session's messages change.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable

from chatrelay.store.models import StoredMessage


class _Entry:
    __slots__ = ("messages", "stored_at")

    def __init__(self, messages: list[StoredMessage], now: float):
        self.messages = messages
        self.stored_at = now


class MessageCache:
    """Read-through cache keyed by session id."""

    def __init__(self, ttl: float = 300.0):
        self.ttl = ttl
        self._entries: dict[str, _Entry] = {}

    async def get_or_load(
        self,
        session_id: str,
        loader: Callable[[], Awaitable[list[StoredMessage]]],
    ) -> list[StoredMessage]:
        now = time.monotonic()
        entry = self._entries.get(session_id)
        if entry is not None and now - entry.stored_at <= self.ttl:
            return list(entry.messages)

        messages = await loader()
        self._entries[session_id] = _Entry(list(messages), now)
        return list(messages)

    async def invalidate(self, session_id: str) -> None:
        self._entries.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def clear(self) -> None:
        self._entries.clear()
