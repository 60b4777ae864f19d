# Sessions router: create sessions, list/persist messages, patch message metadata.
# Created: 2026-10-19

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from chatrelay.api.deps import get_request_id, get_services, get_user_id
from chatrelay.api.errors import APIError
from chatrelay.api.responses import success_response
from chatrelay.api.services import ChatServices
from chatrelay.api.v1.schemas.common import Pagination
from chatrelay.api.v1.schemas.sessions import (
    MessageCreateRequest,
    MessageInfo,
    MessageListData,
    MetadataUpdateRequest,
    SessionCreateRequest,
    SessionInfo,
)
from chatrelay.chat.errors import ChatErrorCode
from chatrelay.store.models import ChatSession, MessageCreate, StoredMessage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sessions"])


def _message_info(message: StoredMessage) -> dict:
    return MessageInfo.model_validate(message).model_dump(mode="json", by_alias=True)


def _session_info(session: ChatSession) -> dict:
    return SessionInfo.model_validate(session).model_dump(mode="json", by_alias=True)


async def _require_session(services: ChatServices, session_id: str, user_id: str) -> ChatSession:
    ownership = await services.sessions.verify(session_id, user_id)
    if not ownership.valid or ownership.session is None:
        raise APIError(404, "Session not found", ChatErrorCode.SESSION_NOT_FOUND)
    return ownership.session


@router.post("/sessions", status_code=201)
async def create_session(
    body: SessionCreateRequest | None = None,
    user_id: str = Depends(get_user_id),
    request_id: str = Depends(get_request_id),
    services: ChatServices = Depends(get_services),
):
    """Create a session owned by the caller."""
    session = await services.sessions.create(user_id, body.title if body else None)
    return success_response(_session_info(session), request_id, status_code=201)


@router.get("/sessions/{session_id}/messages")
async def list_session_messages(
    session_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_user_id),
    request_id: str = Depends(get_request_id),
    services: ChatServices = Depends(get_services),
):
    """List a session's messages, oldest first."""
    await _require_session(services, session_id, user_id)

    messages = await services.cache.get_or_load(
        session_id, lambda: services.messages.list_messages(session_id)
    )
    total = len(messages)
    start = (page - 1) * limit
    window = messages[start : start + limit]

    data = MessageListData(
        messages=[MessageInfo.model_validate(m) for m in window],
        pagination=Pagination(page=page, limit=limit, total=total, has_more=start + limit < total),
    )
    return success_response(data.model_dump(mode="json", by_alias=True), request_id)


@router.post("/sessions/{session_id}/messages", status_code=201)
async def create_session_message(
    session_id: str,
    body: MessageCreateRequest,
    user_id: str = Depends(get_user_id),
    request_id: str = Depends(get_request_id),
    services: ChatServices = Depends(get_services),
):
    """Persist one message into an owned session."""
    await _require_session(services, session_id, user_id)

    message = await services.messages.create(
        MessageCreate(
            session_id=session_id,
            role=body.role,
            content=body.content,
            model_id=body.model_used,
        )
    )
    await services.cache.invalidate(session_id)
    count = len(await services.messages.list_messages(session_id))
    await services.sessions.set_message_count(session_id, count)

    return success_response(_message_info(message), request_id, status_code=201)


@router.patch("/sessions/{session_id}/messages/{message_id}/metadata")
async def update_message_metadata(
    session_id: str,
    message_id: str,
    body: MetadataUpdateRequest,
    user_id: str = Depends(get_user_id),
    request_id: str = Depends(get_request_id),
    services: ChatServices = Depends(get_services),
):
    """Merge into, or replace, a message's metadata."""
    await _require_session(services, session_id, user_id)

    message = await services.messages.update_metadata(
        session_id, message_id, body.metadata, body.merge_strategy
    )
    if message is None:
        raise APIError(404, "Message not found", ChatErrorCode.MESSAGE_NOT_FOUND)

    await services.cache.invalidate(session_id)
    logger.debug(
        "Updated metadata of message %s (%s)", message_id, body.merge_strategy
    )
    return success_response(_message_info(message), request_id)
