# Tests for chat/streaming.py: SSE framing, chunk extraction, error mapping, relay.
# Created: 2026-10-19

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from chatrelay.chat.collector import AssistantResponseCollector
from chatrelay.chat.streaming import (
    SSE_DONE,
    StreamChunk,
    create_stream_error_handler,
    extract_chunk,
    parse_sse_data,
    relay_stream,
    response_headers,
    sse_event,
)
from chatrelay.store.models import ChatSession, OwnershipResult

OWNED = OwnershipResult(valid=True, session=ChatSession(id="s-1", user_id="u-1"))


def _parse_events(frames: list[str]) -> list[tuple[str, dict]]:
    events = []
    for frame in frames:
        lines = frame.strip().split("\n")
        name = lines[0].removeprefix("event: ")
        data = json.loads(lines[1].removeprefix("data: "))
        events.append((name, data))
    return events


async def _collect(gen) -> list[str]:
    return [frame async for frame in gen]


# ---------------------------------------------------------------------------
# extract_chunk / parse_sse_data
# ---------------------------------------------------------------------------


class TestExtractChunk:
    def test_text_shape(self):
        assert extract_chunk({"text": "hi"}) == "hi"

    def test_parts_shape(self):
        payload = {"parts": [{"type": "text", "text": "a"}, {"type": "image"}, {"type": "text", "text": "b"}]}
        assert extract_chunk(payload) == "ab"

    def test_delta_text_shape(self):
        assert extract_chunk({"delta": {"text": "d"}}) == "d"

    def test_openai_choices_shape(self):
        assert extract_chunk({"choices": [{"delta": {"content": "c"}}]}) == "c"

    @pytest.mark.parametrize("payload", [None, "text", 3, {}, {"choices": []}, {"delta": {"text": 1}}])
    def test_unknown_shapes_yield_empty(self, payload):
        assert extract_chunk(payload) == ""


class TestParseSseData:
    def test_json_line(self):
        assert parse_sse_data('data: {"a": 1}') == {"a": 1}

    def test_done_marker(self):
        assert parse_sse_data("data: [DONE]") == SSE_DONE

    @pytest.mark.parametrize("line", ["", ": keep-alive", "event: x", "data:", "data: not-json", "data: [1]"])
    def test_ignored_lines(self, line):
        assert parse_sse_data(line) is None


def test_sse_event_format():
    assert sse_event("chunk", {"content": "hi"}) == 'event: chunk\ndata: {"content": "hi"}\n\n'


def test_response_headers():
    headers = response_headers("req-1", "openai/gpt-oss-20b", "auto")
    assert headers["X-Request-Id"] == "req-1"
    assert headers["X-Model-Id"] == "openai/gpt-oss-20b"
    assert headers["X-Tool-Choice"] == "auto"
    assert headers["Cache-Control"] == "no-cache"
    assert headers["X-Accel-Buffering"] == "no"


# ---------------------------------------------------------------------------
# Error handler
# ---------------------------------------------------------------------------


class TestStreamErrorHandler:
    @pytest.fixture
    def on_error(self):
        return create_stream_error_handler(
            request_id="req-1",
            user_id="u-1",
            model_id="openai/gpt-oss-20b",
            web_search_enabled=True,
        )

    def test_rate_limit(self, on_error):
        assert "too many requests" in on_error(RuntimeError("Rate limit exceeded: slow down"))

    def test_tool_choice_conflict(self, on_error):
        msg = on_error(RuntimeError("Tool choice is none, but model called a tool"))
        assert "configuration issue" in msg

    def test_web_search_error(self, on_error):
        assert "web search" in on_error(RuntimeError("browser_search failed"))

    def test_service_unavailable(self, on_error):
        msg = on_error(RuntimeError("Model service unavailable (503): overloaded"))
        assert "temporarily unavailable" in msg

    def test_generic(self, on_error):
        msg = on_error(ValueError("boom"))
        assert "unexpected error" in msg
        assert "boom" not in msg


# ---------------------------------------------------------------------------
# relay_stream
# ---------------------------------------------------------------------------


async def _chunks(*items, error: Exception | None = None):
    for item in items:
        yield item
    if error is not None:
        raise error


def _collector(store, max_chars=1000):
    return AssistantResponseCollector(
        "s-1", OWNED, "openai/gpt-oss-20b", "req-1", max_chars, store=store
    )


class TestRelayStream:
    async def test_happy_path_events_and_persist(self):
        store = AsyncMock()
        collector = _collector(store)
        frames = await _collect(
            relay_stream(
                _chunks(
                    StreamChunk(text="Hel", model_id="openai/gpt-oss-20b-0801"),
                    StreamChunk(text="lo"),
                ),
                collector,
                lambda e: "err",
                session_id="s-1",
                tool_choice="auto",
            )
        )
        events = _parse_events(frames)
        assert [name for name, _ in events] == ["stream_start", "chunk", "chunk", "stream_end"]
        assert events[0][1] == {"sessionId": "s-1", "modelId": "openai/gpt-oss-20b", "toolChoice": "auto"}
        assert events[1][1]["content"] == "Hel"
        assert events[-1][1]["modelId"] == "openai/gpt-oss-20b-0801"
        assert events[-1][1]["truncated"] is False

        store.create.assert_awaited_once()
        assert store.create.await_args.args[0].content == "Hello"
        assert store.create.await_args.args[0].model_id == "openai/gpt-oss-20b-0801"

    async def test_client_receives_everything_past_ceiling(self):
        store = AsyncMock()
        collector = _collector(store, max_chars=4)
        frames = await _collect(
            relay_stream(
                _chunks(StreamChunk(text="abc"), StreamChunk(text="defg")),
                collector,
                lambda e: "err",
                session_id="s-1",
                tool_choice="auto",
            )
        )
        events = _parse_events(frames)
        sent = "".join(d["content"] for name, d in events if name == "chunk")
        assert sent == "abcdefg"
        assert events[-1][1]["truncated"] is True
        assert store.create.await_args.args[0].content == "abcd"

    async def test_upstream_error_emits_error_and_persists_partial(self):
        store = AsyncMock()
        collector = _collector(store)
        on_error = create_stream_error_handler(
            request_id="req-1", user_id="u-1", model_id="m", web_search_enabled=False
        )
        frames = await _collect(
            relay_stream(
                _chunks(StreamChunk(text="partial"), error=RuntimeError("Rate limit exceeded")),
                collector,
                on_error,
                session_id="s-1",
                tool_choice="auto",
            )
        )
        events = _parse_events(frames)
        assert events[-1][0] == "error"
        assert "too many requests" in events[-1][1]["detail"]
        store.create.assert_awaited_once()
        assert store.create.await_args.args[0].content == "partial"

    async def test_early_close_still_persists(self):
        store = AsyncMock()
        collector = _collector(store)
        gen = relay_stream(
            _chunks(StreamChunk(text="one"), StreamChunk(text="two"), StreamChunk(text="three")),
            collector,
            lambda e: "err",
            session_id="s-1",
            tool_choice="auto",
        )
        await gen.__anext__()  # stream_start
        await gen.__anext__()  # first chunk
        await gen.aclose()

        store.create.assert_awaited_once()
        assert store.create.await_args.args[0].content == "one"

    async def test_empty_stream_persists_nothing(self):
        store = AsyncMock()
        collector = _collector(store)
        frames = await _collect(
            relay_stream(_chunks(), collector, lambda e: "err", session_id="s-1", tool_choice="none")
        )
        assert [name for name, _ in _parse_events(frames)] == ["stream_start", "stream_end"]
        store.create.assert_not_called()

    async def test_cancellation_propagates_after_persist(self):
        store = AsyncMock()
        collector = _collector(store)
        gen = relay_stream(
            _chunks(StreamChunk(text="x"), error=asyncio.CancelledError()),
            collector,
            lambda e: "err",
            session_id="s-1",
            tool_choice="auto",
        )
        with pytest.raises(asyncio.CancelledError):
            await _collect(gen)
        store.create.assert_awaited_once()

    async def test_upstream_closed_when_persist_is_cancelled(self):
        closed = []

        async def upstream():
            try:
                yield StreamChunk(text="x")
            finally:
                closed.append(True)

        collector = _collector(AsyncMock())
        collector.persist = AsyncMock(side_effect=asyncio.CancelledError())
        chunks = upstream()
        gen = relay_stream(chunks, collector, lambda e: "err", session_id="s-1", tool_choice="auto")

        await gen.__anext__()  # stream_start
        await gen.__anext__()  # chunk
        with pytest.raises(asyncio.CancelledError):
            await gen.aclose()
        assert closed == [True]
