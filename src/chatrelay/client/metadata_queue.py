# Metadata retry queue: debounced, bounded-retry delivery of message metadata patches.
# Created: 2026-10-19
#
# Patches can be queued against a provisional ("temp-") id before the server
# has assigned the real one; transfer_pending_metadata() retargets them once it
# has. Everything runs on one event loop: the in-flight set is enough to keep
# two flushes for the same id from overlapping.

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any, Callable, Protocol

from chatrelay.chat.errors import MessageNotFoundError
from chatrelay.config import Settings, get_settings
from chatrelay.store.protocol import MergeStrategy

logger = logging.getLogger(__name__)

PROVISIONAL_ID_PREFIX = "temp-"
DEFAULT_FLUSH_DELAY = 0.06
MAX_METADATA_RETRY_ATTEMPTS = 3


class MetadataPatchClient(Protocol):
    async def patch_message_metadata(
        self,
        session_id: str,
        message_id: str,
        metadata: dict[str, Any],
        merge_strategy: MergeStrategy = "merge",
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class MetadataPatch:
    """What the caller wants applied to a message."""

    session_id: str
    metadata: dict[str, Any]
    merge_strategy: MergeStrategy = "merge"


@dataclass(frozen=True)
class PendingMetadataEntry:
    session_id: str
    metadata: dict[str, Any]
    merge_strategy: MergeStrategy
    retries: int = 0


def is_provisional_id(message_id: str) -> bool:
    return message_id.startswith(PROVISIONAL_ID_PREFIX)


class MetadataRetryQueue:
    """Per-message metadata patches with debounced flushing and bounded retries.

    At most one entry and one timer exist per message id. A "not found" answer
    keeps the entry without using up a retry, since the message may simply not
    be persisted yet. Any other failure counts; at ``max_retries`` the entry is
    dropped.
    """

    def __init__(
        self,
        client: MetadataPatchClient,
        *,
        flush_delay: float = DEFAULT_FLUSH_DELAY,
        max_retries: int = MAX_METADATA_RETRY_ATTEMPTS,
        on_message_updated: Callable[[dict[str, Any]], None] | None = None,
    ):
        self._client = client
        self.flush_delay = flush_delay
        self.max_retries = max_retries
        self._on_message_updated = on_message_updated

        self._pending: dict[str, PendingMetadataEntry] = {}
        self._in_flight: set[str] = set()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        # Ids whose flush was requested while one was already in flight.
        self._deferred: set[str] = set()

    @classmethod
    def from_settings(
        cls,
        client: MetadataPatchClient,
        settings: Settings | None = None,
        *,
        on_message_updated: Callable[[dict[str, Any]], None] | None = None,
    ) -> MetadataRetryQueue:
        """Build a queue using the configured flush delay and retry limit."""
        settings = settings or get_settings()
        return cls(
            client,
            flush_delay=settings.metadata_flush_delay_ms / 1000,
            max_retries=settings.metadata_max_retries,
            on_message_updated=on_message_updated,
        )

    # -- inspection --

    def pending(self, message_id: str) -> PendingMetadataEntry | None:
        return self._pending.get(message_id)

    def has_pending(self, message_id: str) -> bool:
        return message_id in self._pending

    def has_timer(self, message_id: str) -> bool:
        return message_id in self._timers

    def __len__(self) -> int:
        return len(self._pending)

    # -- queueing --

    def queue_metadata_update(
        self,
        message_id: str,
        patch: MetadataPatch,
        should_schedule: bool = True,
    ) -> None:
        """Replace any pending patch for *message_id* and reset its retry count."""
        self._pending[message_id] = PendingMetadataEntry(
            session_id=patch.session_id,
            metadata=dict(patch.metadata),
            merge_strategy=patch.merge_strategy,
        )
        if should_schedule:
            self.schedule_flush(message_id)

    def schedule_flush(self, message_id: str, delay: float | None = None) -> None:
        """(Re)arm the debounce timer for *message_id*. Must run inside the event loop."""
        self._cancel_timer(message_id)
        loop = asyncio.get_running_loop()
        self._timers[message_id] = loop.call_later(
            self.flush_delay if delay is None else delay,
            self._on_timer,
            message_id,
        )

    def _on_timer(self, message_id: str) -> None:
        self._timers.pop(message_id, None)
        task = asyncio.ensure_future(self.flush_pending_metadata(message_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timer(self, message_id: str) -> None:
        handle = self._timers.pop(message_id, None)
        if handle is not None:
            handle.cancel()

    # -- flushing --

    async def flush_pending_metadata(self, message_id: str) -> None:
        """Send the pending patch for *message_id*, at most one request per call."""
        entry = self._pending.get(message_id)
        if entry is None:
            return
        if is_provisional_id(message_id):
            return
        if message_id in self._in_flight:
            self._deferred.add(message_id)
            return

        self._in_flight.add(message_id)
        self._cancel_timer(message_id)
        try:
            updated = await self._client.patch_message_metadata(
                entry.session_id,
                message_id,
                entry.metadata,
                entry.merge_strategy,
            )
        except MessageNotFoundError:
            logger.debug("Message %s not persisted yet; keeping metadata queued", message_id)
        except Exception as e:
            self._record_failure(message_id, entry, e)
        else:
            # A newer patch queued while this one was in flight stays pending.
            if self._pending.get(message_id) is entry:
                del self._pending[message_id]
            if updated and self._on_message_updated is not None:
                self._on_message_updated(updated)
        finally:
            self._in_flight.discard(message_id)
            if message_id in self._deferred:
                self._deferred.discard(message_id)
                if message_id in self._pending and message_id not in self._timers:
                    self.schedule_flush(message_id)

    def _record_failure(
        self, message_id: str, flushed: PendingMetadataEntry, error: Exception
    ) -> None:
        current = self._pending.get(message_id)
        if current is not flushed:
            logger.warning(
                "Failed to persist queued metadata update for %s (entry replaced meanwhile): %s",
                message_id,
                error,
            )
            return

        retries = current.retries + 1
        if retries >= self.max_retries:
            del self._pending[message_id]
            logger.error(
                "Dropping queued metadata update after repeated failures "
                "(message_id=%s, session_id=%s, retries=%d): %s",
                message_id,
                current.session_id,
                retries,
                error,
            )
            return

        self._pending[message_id] = replace(current, retries=retries)
        logger.warning(
            "Failed to persist queued metadata update "
            "(message_id=%s, session_id=%s, retries=%d): %s",
            message_id,
            current.session_id,
            retries,
            error,
        )

    # -- id changes & bulk rescheduling --

    def transfer_pending_metadata(self, old_id: str, new_id: str) -> None:
        """Move a pending patch from a provisional id to the server-assigned one."""
        self._cancel_timer(old_id)
        entry = self._pending.pop(old_id, None)
        if entry is None:
            return
        self._pending[new_id] = entry
        self.schedule_flush(new_id)

    def process_queue_for_messages(self, messages: Iterable[Any]) -> None:
        """Reschedule flushes for pending entries whose message is now known.

        *messages* may hold dicts with an ``"id"`` key or objects with ``.id``.
        """
        known = {m["id"] if isinstance(m, dict) else m.id for m in messages}
        for message_id, entry in list(self._pending.items()):
            if is_provisional_id(message_id):
                continue
            if message_id in known and entry.retries < self.max_retries:
                self.schedule_flush(message_id)

    # -- lifecycle --

    def clear_queue(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._pending.clear()
        self._in_flight.clear()
        self._deferred.clear()

    async def aclose(self) -> None:
        """Drop everything and wait for flushes already started by timers."""
        self.clear_queue()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
