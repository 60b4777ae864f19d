# Storage protocols: the narrow contracts the chat pipeline consumes.
# Created: 2026-10-19
#
# Implement these to back the pipeline with a real datastore or cache.

from typing import Any, Awaitable, Callable, Literal, Protocol

from chatrelay.store.models import MessageCreate, OwnershipResult, StoredMessage

MergeStrategy = Literal["merge", "replace"]


class MessageStoreProtocol(Protocol):
    """Protocol for message storage backends."""

    async def create(self, data: MessageCreate) -> StoredMessage:
        """Persist a new message and return it."""
        ...

    async def get(self, session_id: str, message_id: str) -> StoredMessage | None:
        """Get one message of a session."""
        ...

    async def list_messages(self, session_id: str) -> list[StoredMessage]:
        """Get all messages of a session, oldest first."""
        ...

    async def update_metadata(
        self,
        session_id: str,
        message_id: str,
        metadata: dict[str, Any],
        merge_strategy: MergeStrategy = "merge",
    ) -> StoredMessage | None:
        """Apply a metadata patch; None when the message does not exist."""
        ...


class SessionStoreProtocol(Protocol):
    """Protocol for session ownership checks."""

    async def verify(self, session_id: str, user_id: str) -> OwnershipResult:
        """Check that *user_id* owns *session_id*."""
        ...

    async def set_message_count(self, session_id: str, count: int) -> None:
        """Record how many messages *session_id* holds."""
        ...


class CacheProtocol(Protocol):
    """Read-through cache of session messages."""

    async def get_or_load(
        self,
        session_id: str,
        loader: Callable[[], Awaitable[list[StoredMessage]]],
    ) -> list[StoredMessage]:
        ...

    async def invalidate(self, session_id: str) -> None:
        ...
