# Tests for client/metadata_queue.py: debounced, bounded-retry metadata delivery.
# Created: 2026-10-19

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatrelay.chat.errors import ChatRelayClientError, MessageNotFoundError
from chatrelay.client.metadata_queue import MetadataPatch, MetadataRetryQueue
from chatrelay.config import Settings

PATCH = MetadataPatch(session_id="session-1", metadata={"key": "value"}, merge_strategy="merge")


@pytest.fixture
def api_client():
    client = MagicMock()
    client.patch_message_metadata = AsyncMock(
        return_value={"id": "msg-1", "metadata": {"updated": True}}
    )
    return client


@pytest.fixture
def on_updated():
    return MagicMock()


@pytest.fixture
async def queue(api_client, on_updated):
    q = MetadataRetryQueue(api_client, flush_delay=0.01, on_message_updated=on_updated)
    yield q
    await q.aclose()


# ---------------------------------------------------------------------------
# Queue & flush
# ---------------------------------------------------------------------------


class TestFlush:
    async def test_queued_update_flushes_after_debounce(self, queue, api_client, on_updated):
        queue.queue_metadata_update("msg-1", PATCH)
        assert queue.has_timer("msg-1")

        await asyncio.sleep(0.05)

        api_client.patch_message_metadata.assert_awaited_once_with(
            "session-1", "msg-1", {"key": "value"}, "merge"
        )
        on_updated.assert_called_once_with({"id": "msg-1", "metadata": {"updated": True}})
        assert not queue.has_pending("msg-1")

    async def test_manual_flush_without_schedule(self, queue, api_client):
        patch = MetadataPatch(session_id="session-1", metadata={"key": "manual"}, merge_strategy="replace")
        queue.queue_metadata_update("msg-2", patch, should_schedule=False)
        assert not queue.has_timer("msg-2")
        api_client.patch_message_metadata.assert_not_called()

        await queue.flush_pending_metadata("msg-2")

        api_client.patch_message_metadata.assert_awaited_once_with(
            "session-1", "msg-2", {"key": "manual"}, "replace"
        )

    async def test_requeue_overwrites_and_resets_retries(self, queue, api_client):
        api_client.patch_message_metadata.side_effect = RuntimeError("network")
        queue.queue_metadata_update("msg-1", PATCH, should_schedule=False)
        await queue.flush_pending_metadata("msg-1")
        assert queue.pending("msg-1").retries == 1

        newer = MetadataPatch(session_id="session-1", metadata={"key": "newer"})
        queue.queue_metadata_update("msg-1", newer, should_schedule=False)
        entry = queue.pending("msg-1")
        assert entry.retries == 0
        assert entry.metadata == {"key": "newer"}

    async def test_flush_without_entry_is_noop(self, queue, api_client):
        await queue.flush_pending_metadata("missing")
        api_client.patch_message_metadata.assert_not_called()

    async def test_debounce_keeps_single_timer(self, queue, api_client):
        queue.queue_metadata_update("msg-1", PATCH)
        first = queue._timers["msg-1"]
        queue.queue_metadata_update("msg-1", PATCH)
        queue.schedule_flush("msg-1")
        assert first.cancelled()
        assert len(queue._timers) == 1

        await asyncio.sleep(0.05)
        api_client.patch_message_metadata.assert_awaited_once()

    async def test_concurrent_flush_is_skipped(self, queue, api_client):
        gate = asyncio.Event()

        async def slow_patch(*args):
            await gate.wait()
            return {"id": "msg-1"}

        api_client.patch_message_metadata.side_effect = slow_patch
        queue.queue_metadata_update("msg-1", PATCH, should_schedule=False)

        first = asyncio.create_task(queue.flush_pending_metadata("msg-1"))
        await asyncio.sleep(0)
        await queue.flush_pending_metadata("msg-1")
        gate.set()
        await first

        assert api_client.patch_message_metadata.await_count == 1

    async def test_update_queued_during_flight_survives(self, queue, api_client):
        gate = asyncio.Event()

        async def slow_patch(*args):
            await gate.wait()
            return {"id": "msg-1"}

        api_client.patch_message_metadata.side_effect = slow_patch
        queue.queue_metadata_update("msg-1", PATCH, should_schedule=False)
        flight = asyncio.create_task(queue.flush_pending_metadata("msg-1"))
        await asyncio.sleep(0)

        newer = MetadataPatch(session_id="session-1", metadata={"key": "newer"})
        queue.queue_metadata_update("msg-1", newer, should_schedule=False)
        gate.set()
        await flight

        assert queue.pending("msg-1").metadata == {"key": "newer"}

    async def test_update_queued_behind_slow_flush_is_delivered(self, queue, api_client):
        sent = []

        async def slow_patch(session_id, message_id, metadata, merge_strategy):
            sent.append(metadata)
            await asyncio.sleep(0.05)
            return {"id": message_id}

        api_client.patch_message_metadata.side_effect = slow_patch
        queue.queue_metadata_update("msg-1", MetadataPatch("session-1", {"v": 1}))
        await asyncio.sleep(0.02)
        assert sent == [{"v": 1}]

        # Its own timer fires while the first request is still running.
        queue.queue_metadata_update("msg-1", MetadataPatch("session-1", {"v": 2}))
        await asyncio.sleep(0.2)

        assert sent == [{"v": 1}, {"v": 2}]
        assert not queue.has_pending("msg-1")
        assert not queue.has_timer("msg-1")


# ---------------------------------------------------------------------------
# Provisional ids
# ---------------------------------------------------------------------------


class TestProvisionalIds:
    async def test_temp_ids_never_flushed(self, queue, api_client):
        queue.queue_metadata_update("temp-123", PATCH)
        await asyncio.sleep(0.05)
        await queue.flush_pending_metadata("temp-123")
        api_client.patch_message_metadata.assert_not_called()
        assert queue.has_pending("temp-123")

    async def test_transfer_moves_entry_and_flushes_new_id(self, queue, api_client):
        queue.queue_metadata_update("temp-123", PATCH)
        queue.transfer_pending_metadata("temp-123", "msg-final")

        assert not queue.has_pending("temp-123")
        assert not queue.has_timer("temp-123")
        assert queue.has_pending("msg-final")

        await asyncio.sleep(0.05)
        api_client.patch_message_metadata.assert_awaited_once_with(
            "session-1", "msg-final", {"key": "value"}, "merge"
        )

    async def test_transfer_without_entry_is_noop(self, queue):
        queue.transfer_pending_metadata("temp-none", "msg-x")
        assert not queue.has_pending("msg-x")
        assert not queue.has_timer("msg-x")


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


class TestRetries:
    async def test_failure_then_success(self, queue, api_client, on_updated, caplog):
        api_client.patch_message_metadata.side_effect = [
            RuntimeError("Network error"),
            {"id": "msg-fail", "metadata": {}},
        ]
        queue.queue_metadata_update("msg-fail", PATCH, should_schedule=False)

        with caplog.at_level(logging.WARNING):
            await queue.flush_pending_metadata("msg-fail")
        assert queue.pending("msg-fail").retries == 1
        assert "retries=1" in caplog.text

        await queue.flush_pending_metadata("msg-fail")
        assert api_client.patch_message_metadata.await_count == 2
        on_updated.assert_called_once()
        assert not queue.has_pending("msg-fail")

    async def test_dropped_after_three_failures(self, queue, api_client, caplog):
        api_client.patch_message_metadata.side_effect = ChatRelayClientError("boom", 500)
        queue.queue_metadata_update("msg-max", PATCH, should_schedule=False)

        with caplog.at_level(logging.WARNING):
            for _ in range(3):
                await queue.flush_pending_metadata("msg-max")

        assert not queue.has_pending("msg-max")
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "Dropping queued metadata update" in errors[0].getMessage()
        assert "retries=3" in errors[0].getMessage()

        api_client.patch_message_metadata.reset_mock()
        await queue.flush_pending_metadata("msg-max")
        api_client.patch_message_metadata.assert_not_called()

    async def test_not_found_keeps_entry_without_counting(self, queue, api_client):
        api_client.patch_message_metadata.side_effect = MessageNotFoundError()
        queue.queue_metadata_update("msg-404", PATCH, should_schedule=False)

        for _ in range(5):
            await queue.flush_pending_metadata("msg-404")

        entry = queue.pending("msg-404")
        assert entry is not None
        assert entry.retries == 0
        assert api_client.patch_message_metadata.await_count == 5


# ---------------------------------------------------------------------------
# Bulk rescheduling & lifecycle
# ---------------------------------------------------------------------------


class TestProcessQueue:
    async def test_reschedules_only_known_eligible_ids(self, queue, api_client):
        queue.queue_metadata_update("msg-a", PATCH, should_schedule=False)
        queue.queue_metadata_update("msg-b", PATCH, should_schedule=False)
        queue.queue_metadata_update("temp-c", PATCH, should_schedule=False)

        queue.process_queue_for_messages([{"id": "msg-a"}, {"id": "temp-c"}, {"id": "other"}])

        assert queue.has_timer("msg-a")
        assert not queue.has_timer("msg-b")
        assert not queue.has_timer("temp-c")

        await asyncio.sleep(0.05)
        api_client.patch_message_metadata.assert_awaited_once()
        assert api_client.patch_message_metadata.await_args.args[1] == "msg-a"

    async def test_accepts_objects_with_id(self, queue):
        queue.queue_metadata_update("msg-a", PATCH, should_schedule=False)
        message = MagicMock()
        message.id = "msg-a"
        queue.process_queue_for_messages([message])
        assert queue.has_timer("msg-a")

    async def test_clear_queue_cancels_timers(self, queue, api_client):
        queue.queue_metadata_update("msg-1", PATCH)
        queue.queue_metadata_update("msg-2", PATCH)
        queue.clear_queue()

        assert len(queue) == 0
        assert not queue.has_timer("msg-1")
        await asyncio.sleep(0.05)
        api_client.patch_message_metadata.assert_not_called()

    async def test_independent_queues(self, api_client):
        first = MetadataRetryQueue(api_client)
        second = MetadataRetryQueue(api_client)
        first.queue_metadata_update("msg-1", PATCH, should_schedule=False)
        assert first.has_pending("msg-1")
        assert not second.has_pending("msg-1")
        await first.aclose()
        await second.aclose()


class TestFromSettings:
    async def test_uses_configured_delay_and_retries(self, api_client):
        settings = Settings(_env_file=None, metadata_flush_delay_ms=250, metadata_max_retries=5)
        q = MetadataRetryQueue.from_settings(api_client, settings)
        assert q.flush_delay == 0.25
        assert q.max_retries == 5
        await q.aclose()

    async def test_configured_retry_limit_applies(self, api_client):
        api_client.patch_message_metadata.side_effect = RuntimeError("network")
        settings = Settings(_env_file=None, metadata_max_retries=1)
        q = MetadataRetryQueue.from_settings(api_client, settings)
        q.queue_metadata_update("msg-1", PATCH, should_schedule=False)

        await q.flush_pending_metadata("msg-1")

        assert not q.has_pending("msg-1")
        await q.aclose()

    async def test_configured_delay_applies(self, api_client):
        settings = Settings(_env_file=None, metadata_flush_delay_ms=10)
        q = MetadataRetryQueue.from_settings(api_client, settings)
        q.queue_metadata_update("msg-1", PATCH)
        await asyncio.sleep(0.05)
        api_client.patch_message_metadata.assert_awaited_once()
        await q.aclose()
