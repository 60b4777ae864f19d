# ChatRelay HTTP client: talks to the /api/v1 surface from scripts and UIs.
# Created: 2026-10-19

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from chatrelay.chat.errors import ChatRelayClientError, MessageNotFoundError, MetadataUpdateError
from chatrelay.chat.model_resolver import BYOK_HEADER
from chatrelay.store.protocol import MergeStrategy

logger = logging.getLogger(__name__)


def _error_detail(resp: httpx.Response) -> tuple[str, str | None]:
    """Pull (message, code) out of an error envelope, tolerating non-JSON bodies."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}", None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or f"HTTP {resp.status_code}"), error.get("code")
    return f"HTTP {resp.status_code}", None


class ChatRelayClient:
    """Async client for the chat relay API.

    Pass ``http_client`` to share a connection pool or to inject a mock
    transport; otherwise one is created on first use and closed by ``aclose()``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        user_id: str | None = None,
        byok_key: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.byok_key = byok_key
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.user_id:
            headers["X-User-Id"] = self.user_id
        if self.byok_key:
            headers[BYOK_HEADER] = self.byok_key
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = await self._get_client().request(method, self._url(path), headers=self._headers(), **kwargs)
        if resp.status_code >= 400:
            message, code = _error_detail(resp)
            raise ChatRelayClientError(f"{message} ({code})" if code else message, resp.status_code)
        return resp.json()

    # -- sessions & messages --

    async def create_session(self, title: str | None = None) -> dict[str, Any]:
        body = await self._request("POST", "/sessions", json={"title": title})
        return body["data"]

    async def create_message(
        self,
        session_id: str,
        role: str,
        content: str,
        model_used: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": role, "content": content}
        if model_used:
            payload["modelUsed"] = model_used
        body = await self._request("POST", f"/sessions/{session_id}/messages", json=payload)
        return body["data"]

    async def list_messages(
        self, session_id: str, *, page: int = 1, limit: int = 50
    ) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/sessions/{session_id}/messages",
            params={"page": page, "limit": limit},
        )

    async def patch_message_metadata(
        self,
        session_id: str,
        message_id: str,
        metadata: dict[str, Any],
        merge_strategy: MergeStrategy = "merge",
    ) -> dict[str, Any]:
        """Apply a metadata patch to one message.

        Raises:
            MessageNotFoundError: the message does not exist on the server yet.
            MetadataUpdateError: the server answered without ``success: true``.
            ChatRelayClientError: any other HTTP failure.
        """
        try:
            body = await self._request(
                "PATCH",
                f"/sessions/{session_id}/messages/{message_id}/metadata",
                json={"metadata": metadata, "mergeStrategy": merge_strategy},
            )
        except ChatRelayClientError as e:
            if e.status_code == 404:
                raise MessageNotFoundError(str(e)) from e
            raise
        if not body.get("success"):
            raise MetadataUpdateError("Metadata update was not acknowledged")
        return body["data"]

    # -- chat --

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        *,
        session_id: str | None = None,
        selected_model: str | None = None,
        web_search: bool = False,
    ) -> AsyncIterator[dict[str, Any]]:
        """POST /chat and yield decoded SSE events as ``{"event", "data"}`` dicts."""
        payload: dict[str, Any] = {"messages": messages, "webSearchEnabled": web_search}
        if session_id:
            payload["sessionId"] = session_id
        if selected_model:
            payload["selectedModel"] = selected_model

        async with self._get_client().stream(
            "POST", self._url("/chat"), json=payload, headers=self._headers()
        ) as resp:
            if resp.status_code >= 400:
                await resp.aread()
                message, code = _error_detail(resp)
                raise ChatRelayClientError(f"{message} ({code})" if code else message, resp.status_code)

            event_name = "message"
            async for line in resp.aiter_lines():
                if line.startswith("event:"):
                    event_name = line[len("event:") :].strip()
                elif line.startswith("data:"):
                    try:
                        data = json.loads(line[len("data:") :].strip())
                    except json.JSONDecodeError:
                        logger.debug("Skipping malformed SSE data line")
                        continue
                    yield {"event": event_name, "data": data}
                    if event_name in ("stream_end", "error"):
                        return
