"""Tests for the async EventBus."""

import pytest

from notestream.events.bus import EventBus
from notestream.types import AppEvent, EventType, StreamError


class TestSubscribeAndEmit:
    @pytest.mark.asyncio
    async def test_async_handler(self, bus: EventBus):
        received = []

        async def handler(event: AppEvent):
            received.append(event)

        bus.subscribe(EventType.TOOL_EXECUTED, handler)
        ev = AppEvent(type=EventType.TOOL_EXECUTED, data={"tool": "create_note"})
        await bus.emit(ev)

        assert received == [ev]

    @pytest.mark.asyncio
    async def test_no_cross_delivery(self, bus: EventBus):
        received = []
        bus.subscribe(EventType.TOOL_ERROR, received.append)
        await bus.emit(AppEvent(type=EventType.DATA_CHANGED))
        assert received == []

    @pytest.mark.asyncio
    async def test_wildcard(self, bus: EventBus):
        received = []
        bus.subscribe("*", lambda e: received.append(e.type))
        await bus.emit(AppEvent(type=EventType.DATA_CHANGED))
        await bus.emit(AppEvent(type=EventType.TOOL_ERROR))
        assert received == [EventType.DATA_CHANGED, EventType.TOOL_ERROR]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus: EventBus):
        received = []
        bus.subscribe(EventType.DATA_CHANGED, received.append)
        bus.unsubscribe(EventType.DATA_CHANGED, received.append)
        bus.unsubscribe(EventType.DATA_CHANGED, received.append)
        await bus.emit(AppEvent(type=EventType.DATA_CHANGED))
        assert received == []


class TestHandlerFailures:
    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self, bus: EventBus):
        received = []

        def bad(event):
            raise RuntimeError("handler broke")

        bus.subscribe(EventType.DATA_CHANGED, bad)
        bus.subscribe(EventType.DATA_CHANGED, received.append)
        await bus.emit(AppEvent(type=EventType.DATA_CHANGED))
        assert len(received) == 1


class TestStreamChunks:
    @pytest.mark.asyncio
    async def test_chunk_then_done(self, bus: EventBus, recorder):
        await bus.emit_chunk("Hei")
        await bus.emit_done()

        assert recorder.fragments == ["Hei"]
        assert len(recorder.terminals) == 1
        assert recorder.terminals[0].chunk == ""
        assert not recorder.terminals[0].failed

    @pytest.mark.asyncio
    async def test_errored_terminal(self, bus: EventBus, recorder):
        await bus.emit_done(StreamError(code="api_error", message="API error (500)"))
        terminal = recorder.terminals[0]
        assert terminal.failed
        assert terminal.error.code == "api_error"


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_bounded(self):
        bus = EventBus(max_history=3)
        for _ in range(5):
            await bus.emit(AppEvent(type=EventType.DATA_CHANGED))
        assert len(bus.history) == 3
        bus.clear()
        assert bus.history == []
