# Service container: the stores, cache, resolver and model client one app shares.
# Created: 2026-10-19

from __future__ import annotations

import logging
from dataclasses import dataclass

from chatrelay.chat.llm import ChatModelClient
from chatrelay.chat.model_resolver import ModelResolver
from chatrelay.config import Settings
from chatrelay.store import MessageCache, MessageStore, SessionStore
from chatrelay.store.protocol import MessageStoreProtocol

logger = logging.getLogger(__name__)


@dataclass
class ChatServices:
    """Everything a request handler needs, attached to ``app.state.services``."""

    settings: Settings
    messages: MessageStoreProtocol
    sessions: SessionStore
    cache: MessageCache
    resolver: ModelResolver
    model_client: ChatModelClient

    async def aclose(self) -> None:
        await self.model_client.aclose()


def build_services(settings: Settings) -> ChatServices:
    """Wire the default in-process implementations from *settings*."""
    if settings.data_dir is not None:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Persisting sessions and messages under %s", settings.data_dir)

    return ChatServices(
        settings=settings,
        messages=MessageStore(settings.data_dir),
        sessions=SessionStore(settings.data_dir),
        cache=MessageCache(ttl=settings.message_cache_ttl_seconds),
        resolver=ModelResolver(settings),
        model_client=ChatModelClient(),
    )
