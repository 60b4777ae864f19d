"""Session store: session ownership, optionally persisted to sessions.json."""

import logging
from pathlib import Path

from chatrelay.store.files import load_json_list, save_json_list
from chatrelay.store.models import ChatSession, OwnershipResult

logger = logging.getLogger(__name__)


class SessionStore:
    """Implements SessionStoreProtocol."""

    def __init__(self, base_path: Path | None = None):
        self._file = base_path / "sessions.json" if base_path else None
        self._sessions: dict[str, ChatSession] = {}

        if self._file is not None:
            for data in load_json_list(self._file):
                session = ChatSession.from_dict(data)
                self._sessions[session.id] = session

    def _flush(self) -> None:
        if self._file is None:
            return
        save_json_list(self._file, [s.to_dict() for s in self._sessions.values()])

    async def create(self, user_id: str, title: str | None = None) -> ChatSession:
        session = ChatSession(user_id=user_id)
        if title:
            session.title = title
        self._sessions[session.id] = session
        self._flush()
        logger.info("Created session %s for user %s", session.id, user_id)
        return session

    async def get(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    async def verify(self, session_id: str, user_id: str) -> OwnershipResult:
        session = self._sessions.get(session_id)
        if session is None or session.user_id != user_id:
            return OwnershipResult(valid=False)
        return OwnershipResult(valid=True, session=session)

    async def set_message_count(self, session_id: str, count: int) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.message_count = count
        self._flush()
