# Session and message schemas.
# Created: 2026-10-19

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from chatrelay.api.v1.schemas.common import APIModel, Pagination


class SessionCreateRequest(APIModel):
    """Create a session owned by the caller."""

    title: str | None = Field(default=None, max_length=200)


class SessionInfo(APIModel):
    id: str
    title: str
    created_at: str
    message_count: int = 0


class MessageCreateRequest(APIModel):
    """Persist one message into a session."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=100_000)
    model_used: str | None = None


class MessageInfo(APIModel):
    id: str
    session_id: str
    role: str
    content: str
    timestamp: str
    model_used: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessageListData(APIModel):
    messages: list[MessageInfo]
    pagination: Pagination


class MetadataUpdateRequest(APIModel):
    """Patch a message's metadata."""

    metadata: dict[str, Any]
    merge_strategy: Literal["merge", "replace"] = "merge"
