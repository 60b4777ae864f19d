"""Upstream model invocation.

Resolves a routing decision into a concrete endpoint (``ModelTarget``) and
streams OpenAI-compatible ``/chat/completions`` responses over httpx.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from chatrelay.chat.model_resolver import ModelResolution, ToolChoice
from chatrelay.chat.request import ForwardedMessage
from chatrelay.chat.streaming import SSE_DONE, StreamChunk, extract_chunk, parse_sse_data
from chatrelay.config import Settings
from chatrelay.store.models import StoredMessage

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = {"type": "browser_search"}


class ModelAPIError(Exception):
    """The upstream model endpoint rejected or aborted a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ModelTarget:
    """Immutable descriptor for one upstream endpoint.

    Created via ``resolve_model_target()``.
    """

    provider: str  # "platform" | "byok"
    base_url: str
    api_key: str | None
    model: str  # name sent upstream
    timeout: float

    @property
    def is_byok(self) -> bool:
        return self.provider == "byok"

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


def resolve_model_target(
    settings: Settings,
    resolution: ModelResolution,
    byok_key: str | None = None,
) -> ModelTarget:
    """Map a resolved model id to the endpoint and key that serve it.

    A caller key always targets the BYOK endpoint; the platform key is never
    sent there.
    """
    if byok_key:
        return ModelTarget(
            provider="byok",
            base_url=settings.byok_base_url,
            api_key=byok_key,
            model=settings.byok_upstream_model,
            timeout=settings.model_timeout_seconds,
        )

    api_key = settings.platform_api_key.get_secret_value() if settings.platform_api_key else None
    return ModelTarget(
        provider="platform",
        base_url=settings.platform_base_url,
        api_key=api_key,
        model=resolution.effective_model_id,
        timeout=settings.model_timeout_seconds,
    )


@dataclass
class ModelCall:
    """Everything needed for one streamed completion."""

    target: ModelTarget
    messages: list[dict[str, str]]
    tool_choice: ToolChoice = ToolChoice.AUTO
    web_search: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.target.model,
            "messages": self.messages,
            "stream": True,
        }
        # tool_choice is only meaningful alongside tools
        if self.web_search and not self.target.is_byok:
            payload["tools"] = [WEB_SEARCH_TOOL]
            payload["tool_choice"] = self.tool_choice.value
        payload.update(self.extra)
        return payload


def build_messages(
    settings: Settings,
    forwarded: Sequence[ForwardedMessage],
    *,
    web_search: bool = False,
    history: Sequence[StoredMessage] = (),
) -> list[dict[str, str]]:
    """Assemble the upstream message list: system prompt, history, then the request.

    Stored messages the client also sent back (matched by id) appear once.
    """
    system = settings.system_prompt
    if web_search:
        system = f"{system}\n\n{settings.web_search_prompt}"

    forwarded_ids = {m.id for m in forwarded if m.id}
    messages = [{"role": "system", "content": system}]
    for stored in history:
        if stored.id in forwarded_ids:
            continue
        if stored.role in ("user", "assistant") and stored.content.strip():
            messages.append({"role": stored.role, "content": stored.content})
    messages.extend({"role": m.role, "content": m.content} for m in forwarded if m.content.strip())
    return messages


def _error_message(status_code: int, body: bytes) -> str:
    detail = body.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(detail)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and error.get("message"):
            detail = str(error["message"])
        elif isinstance(error, str):
            detail = error
    if status_code == 429:
        return f"Rate limit exceeded: {detail}"
    if status_code >= 500:
        return f"Model service unavailable ({status_code}): {detail}"
    return f"Model request failed ({status_code}): {detail}"


class ChatModelClient:
    """Streams chat completions from an OpenAI-compatible endpoint."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def stream(self, call: ModelCall) -> AsyncIterator[StreamChunk]:
        """Yield text increments (and the upstream model id) as they arrive.

        Raises ``ModelAPIError`` for HTTP failures or in-stream error events.
        Transport errors from httpx propagate unchanged.
        """
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if call.target.api_key:
            headers["Authorization"] = f"Bearer {call.target.api_key}"

        logger.debug(
            "Streaming completion from %s (model=%s, web_search=%s)",
            call.target.provider,
            call.target.model,
            call.web_search,
        )

        client = self._get_client()
        async with client.stream(
            "POST",
            call.target.completions_url,
            json=call.to_payload(),
            headers=headers,
            timeout=call.target.timeout,
        ) as response:
            if response.status_code >= 400:
                body = await response.aread()
                raise ModelAPIError(_error_message(response.status_code, body), response.status_code)

            async for line in response.aiter_lines():
                event = parse_sse_data(line)
                if event is None:
                    continue
                if event == SSE_DONE:
                    break

                error = event.get("error")
                if error:
                    message = error.get("message") if isinstance(error, dict) else str(error)
                    raise ModelAPIError(message or "Model stream error")

                model_id = event.get("model")
                text = extract_chunk(event)
                if text or model_id:
                    yield StreamChunk(text=text, model_id=model_id if isinstance(model_id, str) else None)
