"""Protocol adapters for the three cloud event-stream formats.

Each adapter turns one ``data:`` payload into calls on a ``StreamHandler``.
Payloads that are not valid JSON (or not the expected shape) are skipped:
the adapter counts them in ``skipped`` and logs them at DEBUG, and the
stream keeps going.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from notestream.errors import UnsupportedProvider
from notestream.types import Provider

_logger = logging.getLogger(__name__)


class StreamHandler(Protocol):
    """Receiver of decoded stream events."""

    async def on_text(self, fragment: str) -> None: ...

    async def on_tool_fragment(
        self,
        call_id: str | None,
        name_delta: str | None,
        args_delta: str | None,
    ) -> None: ...

    async def on_finish(self, reason: str | None) -> None: ...

    async def on_stream_end(self) -> None: ...


def _first(value: Any) -> Any:
    """``value[0]`` for a non-empty list, else ``None``."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


class ProtocolAdapter:
    """Base class: JSON decoding with an explicit skip branch."""

    provider: Provider

    def __init__(self, handler: StreamHandler) -> None:
        self._handler = handler
        self.skipped = 0
        self.finished = False

    async def handle(self, payload: str) -> bool:
        """Process one payload.  Returns ``True`` once the stream has ended."""
        if self.finished:
            return True
        event = self._decode(payload)
        if event is not None:
            await self._dispatch(event)
        return self.finished

    async def end(self) -> None:
        """Signal stream end if the provider never sent its own marker."""
        if not self.finished:
            await self._stream_end()

    async def _stream_end(self) -> None:
        self.finished = True
        await self._handler.on_stream_end()

    def _decode(self, payload: str) -> dict[str, Any] | None:
        try:
            event = json.loads(payload)
        except ValueError:
            # JSONDecodeError, or an integer past the conversion digit limit
            return self._skip(payload, "invalid JSON")
        if not isinstance(event, dict):
            return self._skip(payload, "not a JSON object")
        return event

    def _skip(self, payload: str, reason: str) -> None:
        self.skipped += 1
        _logger.debug(
            "%s: skipping event (%s): %.120s", self.provider.value, reason, payload,
        )
        return None

    async def _dispatch(self, event: dict[str, Any]) -> None:
        raise NotImplementedError


class OpenAIAdapter(ProtocolAdapter):
    """Chat Completions stream: ``choices[0].delta`` plus ``[DONE]``."""

    provider = Provider.OPENAI

    async def handle(self, payload: str) -> bool:
        if self.finished:
            return True
        # [DONE] is not JSON and must be recognised before decoding
        if payload.strip() == "[DONE]":
            await self._stream_end()
            return True
        return await super().handle(payload)

    async def _dispatch(self, event: dict[str, Any]) -> None:
        choice = _first(event.get("choices"))
        if not isinstance(choice, dict):
            return
        delta = choice.get("delta")
        if isinstance(delta, dict):
            tool_calls = delta.get("tool_calls")
            if tool_calls is not None and not isinstance(tool_calls, list):
                self._skip(json.dumps(event), "tool_calls is not a list")
                return
            content = _str_or_none(delta.get("content"))
            if content is not None:
                await self._handler.on_text(content)

            for call in tool_calls or []:
                if not isinstance(call, dict):
                    continue
                function = call.get("function")
                if not isinstance(function, dict):
                    function = {}
                await self._handler.on_tool_fragment(
                    _str_or_none(call.get("id")),
                    _str_or_none(function.get("name")),
                    _str_or_none(function.get("arguments")),
                )

        reason = _str_or_none(choice.get("finish_reason"))
        if reason is not None:
            await self._handler.on_finish(reason)


class AnthropicAdapter(ProtocolAdapter):
    """Messages stream: typed events, text in ``content_block_delta``."""

    provider = Provider.ANTHROPIC

    async def _dispatch(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        if event_type == "content_block_delta":
            delta = event.get("delta")
            text = _str_or_none(delta.get("text")) if isinstance(delta, dict) else None
            if text is not None:
                await self._handler.on_text(text)
        elif event_type == "message_stop":
            await self._stream_end()


class GoogleAdapter(ProtocolAdapter):
    """Gemini ``streamGenerateContent?alt=sse`` stream."""

    provider = Provider.GOOGLE

    async def _dispatch(self, event: dict[str, Any]) -> None:
        candidate = _first(event.get("candidates"))
        if not isinstance(candidate, dict):
            return
        content = candidate.get("content")
        part = _first(content.get("parts")) if isinstance(content, dict) else None
        if isinstance(part, dict):
            text = _str_or_none(part.get("text"))
            if text is not None:
                await self._handler.on_text(text)

        reason = candidate.get("finishReason")
        if reason is not None:
            await self._handler.on_finish(str(reason))
            await self._stream_end()


_ADAPTERS: dict[Provider, type[ProtocolAdapter]] = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.ANTHROPIC: AnthropicAdapter,
    Provider.GOOGLE: GoogleAdapter,
}


def adapter_for(provider: Provider) -> type[ProtocolAdapter]:
    """Return the adapter class for a remote provider."""
    try:
        return _ADAPTERS[provider]
    except KeyError:
        raise UnsupportedProvider(provider.value) from None
