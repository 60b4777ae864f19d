"""Message store with optional JSON-file persistence.

Storage layout (when ``base_path`` is set):
<base_path>/
    messages.json   # all messages, every session

Design notes:
- In-memory index keyed by message id, per-session id lists for ordering
- File rewritten atomically after each mutation
- Suitable for single-process deployments; swap in a real datastore by
  implementing MessageStoreProtocol
"""

import copy
import logging
from pathlib import Path
from typing import Any

from chatrelay.store.files import load_json_list, save_json_list
from chatrelay.store.models import MessageCreate, StoredMessage
from chatrelay.store.protocol import MergeStrategy

logger = logging.getLogger(__name__)


def merge_metadata(
    current: dict[str, Any] | None,
    incoming: dict[str, Any],
    strategy: MergeStrategy,
) -> dict[str, Any]:
    """Combine metadata dicts.

    ``merge`` overlays *incoming* on a deep copy of *current*; ``replace``
    discards *current*. Neither argument is mutated.
    """
    base = {} if strategy == "replace" else copy.deepcopy(current or {})
    base.update(copy.deepcopy(incoming or {}))
    return base


class MessageStore:
    """Implements MessageStoreProtocol in memory, optionally backed by a JSON file."""

    def __init__(self, base_path: Path | None = None):
        self.base_path = base_path
        self._file = base_path / "messages.json" if base_path else None

        self._messages: dict[str, StoredMessage] = {}
        self._by_session: dict[str, list[str]] = {}

        if self._file is not None:
            for data in load_json_list(self._file):
                self._index(StoredMessage.from_dict(data))

    def _index(self, message: StoredMessage) -> None:
        self._messages[message.id] = message
        self._by_session.setdefault(message.session_id, []).append(message.id)

    def _flush(self) -> None:
        if self._file is None:
            return
        save_json_list(self._file, [m.to_dict() for m in self._messages.values()])

    async def create(self, data: MessageCreate) -> StoredMessage:
        message = StoredMessage(
            session_id=data.session_id,
            role=data.role,
            content=data.content,
            timestamp=data.timestamp,
            model_used=data.model_id,
        )
        self._index(message)
        self._flush()
        logger.debug("Stored %s message %s in session %s", message.role, message.id, message.session_id)
        return message

    async def get(self, session_id: str, message_id: str) -> StoredMessage | None:
        message = self._messages.get(message_id)
        if message is None or message.session_id != session_id:
            return None
        return message

    async def list_messages(self, session_id: str) -> list[StoredMessage]:
        ids = self._by_session.get(session_id, [])
        messages = [self._messages[i] for i in ids if i in self._messages]
        return sorted(messages, key=lambda m: m.timestamp)

    async def count(self, session_id: str, role: str | None = None) -> int:
        messages = await self.list_messages(session_id)
        if role is None:
            return len(messages)
        return sum(1 for m in messages if m.role == role)

    async def update_metadata(
        self,
        session_id: str,
        message_id: str,
        metadata: dict[str, Any],
        merge_strategy: MergeStrategy = "merge",
    ) -> StoredMessage | None:
        message = await self.get(session_id, message_id)
        if message is None:
            return None
        message.metadata = merge_metadata(message.metadata, metadata, merge_strategy)
        self._flush()
        return message
