"""Data models for sessions and messages.

Timestamps are ISO 8601 strings so records serialize to JSON unchanged.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def generate_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    """Get current UTC time as ISO 8601 string."""
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class MessageCreate:
    """Input for ``MessageStoreProtocol.create``."""

    session_id: str
    role: str
    content: str
    timestamp: str = field(default_factory=now_iso)
    model_id: str | None = None


@dataclass
class StoredMessage:
    """A persisted chat message."""

    id: str = field(default_factory=generate_id)
    session_id: str = ""
    role: str = "user"
    content: str = ""
    timestamp: str = field(default_factory=now_iso)
    model_used: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "model_used": self.model_used,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredMessage:
        """Create from dictionary."""
        return cls(
            id=data.get("id", generate_id()),
            session_id=data.get("session_id", ""),
            role=data.get("role", "user"),
            content=data.get("content", ""),
            timestamp=data.get("timestamp", now_iso()),
            model_used=data.get("model_used"),
            metadata=data.get("metadata", {}),
            created_at=data.get("created_at", now_iso()),
        )


@dataclass
class ChatSession:
    """A conversation owned by one user."""

    id: str = field(default_factory=generate_id)
    user_id: str = ""
    title: str = "New conversation"
    created_at: str = field(default_factory=now_iso)
    message_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "created_at": self.created_at,
            "message_count": self.message_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatSession:
        return cls(
            id=data.get("id", generate_id()),
            user_id=data.get("user_id", ""),
            title=data.get("title", "New conversation"),
            created_at=data.get("created_at", now_iso()),
            message_count=data.get("message_count", 0),
        )


@dataclass(frozen=True)
class OwnershipResult:
    """Outcome of a session ownership check."""

    valid: bool
    session: ChatSession | None = None
