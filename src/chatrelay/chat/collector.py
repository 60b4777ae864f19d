# Assistant response collector: buffers a streamed reply and persists it once.
# Created: 2026-10-19
#
# One collector per request, owned by the task serving that request, so no
# locking. The character ceiling is the only bound on a request's buffer.

from __future__ import annotations

import logging
from typing import Callable, NamedTuple

from chatrelay.store.models import MessageCreate, OwnershipResult, now_iso
from chatrelay.store.protocol import CacheProtocol, MessageStoreProtocol, SessionStoreProtocol

logger = logging.getLogger(__name__)


class AppendResult(NamedTuple):
    value: str
    truncated: bool


AppendWithLimit = Callable[[str, str, int], AppendResult]


def append_with_limit(current: str, addition: str, max_chars: int) -> AppendResult:
    """Append *addition* to *current* without exceeding *max_chars* characters.

    Counts code points, not bytes, so a cut never splits a multi-byte
    character. Once *current* is at the ceiling, further non-empty additions
    return *current* unchanged with ``truncated=True``.
    """
    if not addition:
        return AppendResult(current, False)

    remaining = max_chars - len(current)
    if remaining <= 0:
        return AppendResult(current[:max_chars], True)
    if len(addition) <= remaining:
        return AppendResult(current + addition, False)
    return AppendResult(current + addition[:remaining], True)


class AssistantResponseCollector:
    """Accumulates streamed assistant text and writes it to the message store."""

    def __init__(
        self,
        session_id: str | None,
        ownership: OwnershipResult,
        initial_model_id: str,
        request_id: str,
        max_chars: int,
        append_with_limit: AppendWithLimit = append_with_limit,
        *,
        store: MessageStoreProtocol,
        cache: CacheProtocol | None = None,
        sessions: SessionStoreProtocol | None = None,
    ):
        self.session_id = session_id
        self.ownership = ownership
        self.request_id = request_id
        self.max_chars = max_chars
        self._append_with_limit = append_with_limit
        self._store = store
        self._cache = cache
        self._sessions = sessions

        self._buffer = ""
        self._truncated = False
        self._model_id = initial_model_id
        self._persisted = False

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def model_id(self) -> str:
        return self._model_id

    def was_truncated(self) -> bool:
        return self._truncated

    def append(self, chunk: str) -> bool:
        """Add a streamed chunk. Returns True once the ceiling has been hit."""
        if not chunk or self._truncated:
            return self._truncated
        result = self._append_with_limit(self._buffer, chunk, self.max_chars)
        self._buffer = result.value
        self._truncated = result.truncated
        return self._truncated

    def set_model_id(self, model_id: str | None) -> None:
        """Record an upstream model substitution. Empty or non-string values are ignored."""
        if isinstance(model_id, str) and model_id:
            self._model_id = model_id

    async def persist(self) -> None:
        """Write the buffered reply as one assistant message.

        No-op without an owned session, for a blank buffer, or on a second
        call. Store failures are logged, never raised: by now the response
        has usually been sent and there is nobody left to tell.
        """
        if self._persisted:
            return
        if not self.session_id or not self.ownership.valid:
            return
        content = self._buffer.strip()
        if not content:
            return
        self._persisted = True

        try:
            await self._store.create(
                MessageCreate(
                    session_id=self.session_id,
                    role="assistant",
                    content=content,
                    timestamp=now_iso(),
                    model_id=self._model_id,
                )
            )
        except Exception:
            logger.exception(
                "Failed to persist assistant message after stream "
                "(request_id=%s, session_id=%s)",
                self.request_id,
                self.session_id,
            )
            return

        if self._cache is not None:
            try:
                await self._cache.invalidate(self.session_id)
            except Exception as e:
                logger.warning("Message cache invalidation failed for %s: %s", self.session_id, e)

        if self._sessions is not None:
            try:
                count = len(await self._store.list_messages(self.session_id))
                await self._sessions.set_message_count(self.session_id, count)
            except Exception as e:
                logger.warning("Message count refresh failed for %s: %s", self.session_id, e)

        logger.info(
            "Assistant message persisted after stream (request_id=%s, session_id=%s, truncated=%s)",
            self.request_id,
            self.session_id,
            self._truncated,
        )
