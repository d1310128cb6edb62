"""Reassembly and execution of streamed tool calls.

OpenAI-compatible streams send a tool call as fragments: the first carries
the call ``id``; later ones append to ``function.name`` and
``function.arguments``.  Only one call is tracked at a time; a fragment with
a new id replaces whatever was pending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from notestream.errors import ToolArgumentError
from notestream.events.bus import EventBus
from notestream.streaming.sink import TextForwarder
from notestream.tools.registry import ToolRegistry
from notestream.types import AppEvent, EventType, ToolCall, ToolResult

_logger = logging.getLogger(__name__)


@dataclass
class PendingToolCall:
    id: str
    name: str = ""
    arguments: str = ""


class ToolCallAssembler:
    """Single-slot accumulator for one in-flight tool call."""

    def __init__(self) -> None:
        self._pending: PendingToolCall | None = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def pending(self) -> PendingToolCall | None:
        return self._pending

    def begin_call(self, call_id: str) -> None:
        if self._pending is not None:
            _logger.warning(
                "Tool call %s replaced by %s before completion",
                self._pending.id, call_id,
            )
        self._pending = PendingToolCall(id=call_id)

    def append_name(self, text: str) -> None:
        if self._pending is None:
            _logger.debug("Dropping name fragment with no pending call: %r", text)
            return
        self._pending.name += text

    def append_args(self, text: str) -> None:
        if self._pending is None:
            _logger.debug("Dropping argument fragment with no pending call: %r", text)
            return
        self._pending.arguments += text

    def complete(self) -> ToolCall | None:
        """Finalize and clear the pending call (``None`` if there is none)."""
        pending, self._pending = self._pending, None
        if pending is None:
            return None
        return ToolCall(id=pending.id, name=pending.name, arguments=pending.arguments)


@dataclass
class ToolOutcome:
    call: ToolCall
    result: ToolResult | None = None
    error: ToolArgumentError | None = None


class ToolDispatcher(TextForwarder):
    """``StreamHandler`` for the OpenAI stream: text plus tool calls.

    A call is executed when ``finish_reason == "tool_calls"`` arrives or the
    stream ends with a call still pending.  Failures are reported on the
    ``TOOL_ERROR`` side channel and never interrupt the text stream.
    """

    def __init__(
        self,
        bus: EventBus,
        registry: ToolRegistry,
        assembler: ToolCallAssembler | None = None,
    ) -> None:
        super().__init__(bus)
        self._registry = registry
        self._assembler = assembler or ToolCallAssembler()
        self.outcomes: list[ToolOutcome] = []

    async def on_tool_fragment(
        self,
        call_id: str | None,
        name_delta: str | None,
        args_delta: str | None,
    ) -> None:
        if call_id:
            self._assembler.begin_call(call_id)
        if name_delta:
            self._assembler.append_name(name_delta)
        if args_delta:
            self._assembler.append_args(args_delta)

    async def on_finish(self, reason: str | None) -> None:
        await super().on_finish(reason)
        if reason == "tool_calls":
            await self._run_pending()

    async def on_stream_end(self) -> None:
        await self._run_pending()

    async def _run_pending(self) -> None:
        call = self._assembler.complete()
        if call is None:
            return
        outcome = ToolOutcome(call=call)
        self.outcomes.append(outcome)
        _logger.info("Executing tool call %s: %s", call.id, call.name)

        try:
            result = await self._registry.execute_json(call.name, call.arguments)
        except ToolArgumentError as e:
            outcome.error = e
            _logger.warning("%s", e)
            await self._bus.emit(AppEvent(
                type=EventType.TOOL_ERROR,
                data={"call_id": call.id, "tool": call.name, "code": e.code, "error": str(e)},
            ))
            return

        outcome.result = result
        if not result.success:
            await self._bus.emit(AppEvent(
                type=EventType.TOOL_ERROR,
                data={"call_id": call.id, "tool": call.name, "code": "tool_failed", "error": result.error},
            ))
            return

        await self._bus.emit(AppEvent(
            type=EventType.TOOL_EXECUTED,
            data={"call_id": call.id, "tool": call.name, "output": result.output},
        ))
        if result.mutated:
            await self._bus.emit(AppEvent(type=EventType.DATA_CHANGED))
