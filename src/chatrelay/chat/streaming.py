# Stream helpers: SSE framing, chunk extraction, error mapping, and the relay
# that forwards model output to the client while feeding the collector.
# Created: 2026-10-19

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Callable

from chatrelay.chat.collector import AssistantResponseCollector

logger = logging.getLogger(__name__)

SSE_DONE = "[DONE]"

StreamErrorHandler = Callable[[BaseException], str]


@dataclass(frozen=True)
class StreamChunk:
    """One increment from the underlying model: text and/or a reported model id."""

    text: str = ""
    model_id: str | None = None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_chunk(payload: Any) -> str:
    """Pull the text out of one streamed event.

    Understands ``{"text"}``, ``{"parts": [...]}``, ``{"delta": {"text"}}``
    and OpenAI-style ``{"choices": [{"delta": {"content"}}]}``.
    """
    if not isinstance(payload, dict):
        return ""

    text = payload.get("text")
    if isinstance(text, str):
        return text

    parts = payload.get("parts")
    if isinstance(parts, list):
        return "".join(
            p["text"]
            for p in parts
            if isinstance(p, dict) and p.get("type") == "text" and isinstance(p.get("text"), str)
        )

    delta = payload.get("delta")
    if isinstance(delta, dict) and isinstance(delta.get("text"), str):
        return delta["text"]

    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice_delta = choices[0].get("delta")
        if isinstance(choice_delta, dict) and isinstance(choice_delta.get("content"), str):
            return choice_delta["content"]

    return ""


def parse_sse_data(line: str) -> dict[str, Any] | str | None:
    """Decode a ``data:`` line. Returns the JSON object, ``SSE_DONE``, or None."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:") :].strip()
    if not data:
        return None
    if data == SSE_DONE:
        return SSE_DONE
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping non-JSON SSE payload: %.80s", data)
        return None
    return parsed if isinstance(parsed, dict) else None


def sse_event(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def response_headers(request_id: str, model_id: str, tool_choice: str) -> dict[str, str]:
    return {
        "X-Request-Id": request_id,
        "X-Model-Id": model_id,
        "X-Tool-Choice": tool_choice,
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def create_stream_error_handler(
    *,
    request_id: str,
    user_id: str,
    model_id: str,
    web_search_enabled: bool,
) -> StreamErrorHandler:
    """Build the hook that turns an upstream failure into a user-facing message."""
    context = {
        "request_id": request_id,
        "user_id": user_id,
        "model_id": model_id,
        "web_search_enabled": web_search_enabled,
    }

    def _on_error(error: BaseException) -> str:
        message = str(error)
        lower = message.lower()

        if "rate limit" in lower:
            logger.warning("Rate limit exceeded in chat stream", extra=context)
            return "I received too many requests. Please wait a moment and try again."

        if (
            "tool choice is none, but model called a tool" in lower
            or "tool choice is required, but model did not call a tool" in lower
        ):
            logger.error("Tool choice conflict in chat stream: %s", message, extra=context)
            return "I encountered a configuration issue. Let me try again without additional tools."

        if "browser_search" in lower or "web search" in lower or "tool" in lower:
            logger.error("Web search tool error in chat stream: %s", message, extra=context)
            return (
                "I encountered an issue with web search functionality. "
                "Let me help you with the information I have available."
            )

        if "unavailable" in lower or "timeout" in lower or "timed out" in lower or "service" in lower:
            logger.error("AI service error in chat stream: %s", message, extra=context)
            return "The AI service is temporarily unavailable. Please try again in a few moments."

        logger.error("Unhandled chat stream error: %r", error, extra=context)
        return (
            "An unexpected error occurred. Please try again or contact support "
            "if the issue persists."
        )

    return _on_error


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------


async def relay_stream(
    chunks: AsyncIterator[StreamChunk],
    collector: AssistantResponseCollector,
    on_error: StreamErrorHandler,
    *,
    session_id: str | None,
    tool_choice: str,
) -> AsyncIterator[str]:
    """Forward model output to the client as SSE and feed the collector.

    The client always receives every chunk; only the collector stops growing
    at its ceiling. Whatever was buffered is persisted on every exit path,
    including upstream errors and client disconnects.
    """
    try:
        yield sse_event(
            "stream_start",
            {"sessionId": session_id, "modelId": collector.model_id, "toolChoice": tool_choice},
        )
        try:
            async for chunk in chunks:
                if chunk.model_id:
                    collector.set_model_id(chunk.model_id)
                if chunk.text:
                    collector.append(chunk.text)
                    yield sse_event("chunk", {"content": chunk.text, "type": "text"})
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            yield sse_event("error", {"detail": on_error(exc)})
        else:
            yield sse_event(
                "stream_end",
                {
                    "sessionId": session_id,
                    "modelId": collector.model_id,
                    "truncated": collector.was_truncated(),
                },
            )
    finally:
        try:
            # Shielded so a disconnect cannot cancel the write half-way.
            await asyncio.shield(collector.persist())
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()
