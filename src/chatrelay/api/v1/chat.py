# Chat router: validate, route to a model, stream the reply back over SSE.
# Created: 2026-10-19
#
# The assistant reply is collected while it streams and persisted into the
# caller's session once the stream ends, fails, or the client disconnects.

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from chatrelay.api.deps import get_request_id, get_services, get_user_id
from chatrelay.api.responses import error_response, failure_response
from chatrelay.api.services import ChatServices
from chatrelay.chat.collector import AssistantResponseCollector
from chatrelay.chat.errors import ChatErrorCode, UnknownModelError, ValidationFailure
from chatrelay.chat.llm import ModelCall, build_messages, resolve_model_target
from chatrelay.chat.model_resolver import extract_byok_key
from chatrelay.chat.request import normalize, precheck
from chatrelay.chat.streaming import create_stream_error_handler, relay_stream, response_headers
from chatrelay.store.models import OwnershipResult, StoredMessage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


async def _session_context(
    services: ChatServices, session_id: str | None, user_id: str
) -> tuple[OwnershipResult, list[StoredMessage]]:
    if not session_id:
        return OwnershipResult(valid=False), []

    ownership = await services.sessions.verify(session_id, user_id)
    if not ownership.valid:
        logger.warning(
            "Session %s is not owned by the caller; reply will not be persisted",
            session_id,
        )
        return ownership, []

    history = await services.cache.get_or_load(
        session_id, lambda: services.messages.list_messages(session_id)
    )
    return ownership, history


@router.post("/chat")
async def chat(
    request: Request,
    user_id: str = Depends(get_user_id),
    request_id: str = Depends(get_request_id),
    services: ChatServices = Depends(get_services),
):
    """Send a conversation and receive the assistant reply as an SSE stream."""
    settings = services.settings

    content_type = request.headers.get("content-type")
    normalized = precheck(
        content_type,
        request.headers.get("content-length"),
        max_input_bytes=settings.chat_input_max_bytes,
    )
    if normalized is None:
        body = await request.body()
        normalized = normalize(body, content_type, max_input_bytes=settings.chat_input_max_bytes)
    if isinstance(normalized, ValidationFailure):
        logger.info(
            "Rejected chat request (request_id=%s, status=%d, code=%s)",
            request_id,
            normalized.status_code,
            normalized.code.value,
        )
        return failure_response(normalized, request_id)

    try:
        resolution = services.resolver.resolve(request.headers, normalized)
    except UnknownModelError as e:
        return error_response(request_id, 400, str(e), ChatErrorCode.INVALID_INPUT)

    session_id = normalized.provided_session_id
    ownership, history = await _session_context(services, session_id, user_id)

    byok_key = extract_byok_key(request.headers)
    call = ModelCall(
        target=resolve_model_target(settings, resolution, byok_key),
        messages=build_messages(
            settings,
            normalized.payload_messages,
            web_search=resolution.has_web_search,
            history=history,
        ),
        tool_choice=resolution.tool_choice,
        web_search=resolution.has_web_search,
    )

    logger.info(
        "Model selection for chat request (request_id=%s, model=%s, tool_choice=%s, reason=%s)",
        request_id,
        resolution.effective_model_id,
        resolution.tool_choice.value,
        resolution.reason,
        extra={"request_id": request_id, "session_id": session_id},
    )

    collector = AssistantResponseCollector(
        session_id,
        ownership,
        resolution.effective_model_id,
        request_id,
        settings.chat_response_max_chars,
        store=services.messages,
        cache=services.cache,
        sessions=services.sessions,
    )
    on_error = create_stream_error_handler(
        request_id=request_id,
        user_id=user_id,
        model_id=resolution.effective_model_id,
        web_search_enabled=resolution.has_web_search,
    )

    return StreamingResponse(
        relay_stream(
            services.model_client.stream(call),
            collector,
            on_error,
            session_id=session_id,
            tool_choice=resolution.tool_choice.value,
        ),
        media_type="text/event-stream",
        headers=response_headers(
            request_id,
            resolution.effective_model_id,
            resolution.tool_choice.value,
        ),
    )
