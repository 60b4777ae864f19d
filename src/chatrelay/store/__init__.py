"""Message, session and cache storage for the chat pipeline."""

from chatrelay.store.cache import MessageCache
from chatrelay.store.message_store import MessageStore, merge_metadata
from chatrelay.store.models import (
    ChatSession,
    MessageCreate,
    OwnershipResult,
    StoredMessage,
)
from chatrelay.store.protocol import (
    CacheProtocol,
    MessageStoreProtocol,
    SessionStoreProtocol,
)
from chatrelay.store.session_store import SessionStore

__all__ = [
    "CacheProtocol",
    "ChatSession",
    "MessageCache",
    "MessageCreate",
    "MessageStore",
    "MessageStoreProtocol",
    "OwnershipResult",
    "SessionStore",
    "SessionStoreProtocol",
    "StoredMessage",
    "merge_metadata",
]
