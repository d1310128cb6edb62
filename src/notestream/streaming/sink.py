"""Stream handler that forwards text fragments to the EventBus."""

from __future__ import annotations

import logging

from notestream.events.bus import EventBus

_logger = logging.getLogger(__name__)


class TextForwarder:
    """``StreamHandler`` for text-only providers.

    Forwards each fragment to the output sink in arrival order.  The
    terminal chunk is not emitted here: the router emits exactly one per
    invocation once the stream is fully consumed.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self.fragments = 0
        self.finish_reason: str | None = None
        self._parts: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def on_text(self, fragment: str) -> None:
        self.fragments += 1
        self._parts.append(fragment)
        await self._bus.emit_chunk(fragment)

    async def on_tool_fragment(
        self,
        call_id: str | None,
        name_delta: str | None,
        args_delta: str | None,
    ) -> None:
        _logger.debug("Ignoring tool fragment on a text-only stream")

    async def on_finish(self, reason: str | None) -> None:
        self.finish_reason = reason

    async def on_stream_end(self) -> None:
        pass
