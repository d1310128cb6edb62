"""Async pub/sub EventBus: the output sink for stream chunks and side-channel events."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict, deque
from typing import Any, Callable

from notestream.types import AppEvent, EventType, StreamChunk, StreamError

_logger = logging.getLogger(__name__)

ALL_EVENTS = "*"

# Sync or async callable taking an AppEvent
Handler = Callable[[AppEvent], Any]


class EventBus:
    """In-process async event bus.

    Handlers subscribe per ``EventType`` (or ``"*"`` for everything) and may
    be plain functions or coroutines.  ``emit()`` awaits every matching
    handler before returning, so events emitted one after another reach a
    subscriber in emission order.  A failing handler is logged and skipped;
    it never affects the emitter or the other subscribers.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._subscribers: defaultdict[str, list[Handler]] = defaultdict(list)
        self._history: deque[AppEvent] = deque(maxlen=max_history)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, event_type: EventType | str, handler: Handler) -> None:
        self._subscribers[_topic(event_type)].append(handler)

    def unsubscribe(self, event_type: EventType | str, handler: Handler) -> None:
        """Remove *handler*; unknown handlers are ignored."""
        subscribers = self._subscribers.get(_topic(event_type))
        if subscribers and handler in subscribers:
            subscribers.remove(handler)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def emit(self, event: AppEvent) -> None:
        """Deliver *event* to its type's subscribers and the catch-all ones."""
        self._history.append(event)
        targets = [
            *self._subscribers.get(_topic(event.type), ()),
            *self._subscribers.get(ALL_EVENTS, ()),
        ]
        if targets:
            await asyncio.gather(*(self._deliver(h, event) for h in targets))

    async def emit_chunk(self, text: str) -> None:
        """Deliver one non-final text fragment."""
        await self.emit(AppEvent(
            type=EventType.AI_STREAM_CHUNK,
            data={"chunk": StreamChunk(chunk=text, done=False)},
        ))

    async def emit_done(self, error: StreamError | None = None) -> None:
        """Deliver the terminal chunk, optionally carrying the fatal error."""
        await self.emit(AppEvent(
            type=EventType.AI_STREAM_CHUNK,
            data={"chunk": StreamChunk(chunk="", done=True, error=error)},
        ))

    @property
    def history(self) -> list[AppEvent]:
        """Most recent events, oldest first."""
        return list(self._history)

    def clear(self) -> None:
        self._subscribers.clear()
        self._history.clear()

    @staticmethod
    async def _deliver(handler: Handler, event: AppEvent) -> None:
        try:
            outcome = handler(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            _logger.exception(
                "Subscriber %s failed on %s",
                getattr(handler, "__qualname__", handler), event.type.value,
            )


def _topic(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else str(event_type)
