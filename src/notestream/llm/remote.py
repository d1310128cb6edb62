"""Streaming client for the three cloud providers.

Builds the provider-specific request, streams the response body through
``SSELineParser`` and feeds each ``data:`` payload to the matching
protocol adapter.  No retries: a failure surfaces to the router as
``ApiError`` or ``HttpTransportError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from notestream.errors import ApiError, HttpTransportError, UnsupportedProvider
from notestream.llm.prompts import OPENAI_SYSTEM_PROMPT, google_prompt, user_message
from notestream.streaming.adapters import ProtocolAdapter, StreamHandler, adapter_for
from notestream.streaming.sse import SSELineParser
from notestream.tools.registry import ToolRegistry
from notestream.types import Provider

_logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS: dict[Provider, str] = {
    Provider.OPENAI: "https://api.openai.com/v1",
    Provider.ANTHROPIC: "https://api.anthropic.com/v1",
    Provider.GOOGLE: "https://generativelanguage.googleapis.com/v1beta",
}

ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_MAX_TOKENS = 4096


@dataclass
class RemoteRequest:
    """A fully built streaming request."""

    provider: Provider
    url: str
    headers: dict[str, str]
    body: dict[str, Any]
    params: dict[str, str] = field(default_factory=dict)


@dataclass
class StreamStats:
    payloads: int = 0
    skipped: int = 0
    dropped_lines: int = 0


def build_request(
    provider: Provider,
    api_key: str,
    model: str,
    prompt: str,
    context: str,
    registry: ToolRegistry | None = None,
    base_url: str | None = None,
) -> RemoteRequest:
    """Build the streaming request for a remote *provider*."""
    if provider not in DEFAULT_BASE_URLS:
        raise UnsupportedProvider(provider.value)
    base = (base_url or DEFAULT_BASE_URLS[provider]).rstrip("/")

    if provider is Provider.OPENAI:
        body: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": OPENAI_SYSTEM_PROMPT},
                {"role": "user", "content": user_message(prompt, context)},
            ],
            "stream": True,
        }
        if registry is not None and registry.tool_names():
            body["tools"] = registry.get_openai_schemas()
        return RemoteRequest(
            provider=provider,
            url=f"{base}/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            body=body,
        )

    if provider is Provider.ANTHROPIC:
        return RemoteRequest(
            provider=provider,
            url=f"{base}/messages",
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            body={
                "model": model,
                "messages": [{"role": "user", "content": user_message(prompt, context)}],
                "max_tokens": ANTHROPIC_MAX_TOKENS,
                "stream": True,
            },
        )

    # Google carries the key in the query string; never log the full URL
    return RemoteRequest(
        provider=provider,
        url=f"{base}/models/{model}:streamGenerateContent",
        headers={"Content-Type": "application/json"},
        body={"contents": [{"parts": [{"text": google_prompt(prompt, context)}]}]},
        params={"alt": "sse", "key": api_key},
    )


async def stream_response(
    client: httpx.AsyncClient,
    request: RemoteRequest,
    handler: StreamHandler,
) -> StreamStats:
    """POST *request* and drive *handler* with the decoded stream.

    Raises ``ApiError`` for a non-success status and ``HttpTransportError``
    for network failures, including ones mid-stream.
    """
    adapter: ProtocolAdapter = adapter_for(request.provider)(handler)
    parser = SSELineParser()
    stats = StreamStats()
    _logger.info("Streaming from %s (%s)", request.provider.value, request.body.get("model", "-"))

    try:
        async with client.stream(
            "POST",
            request.url,
            headers=request.headers,
            params=request.params or None,
            json=request.body,
        ) as resp:
            if not resp.is_success:
                body = (await resp.aread()).decode("utf-8", errors="replace")
                _logger.warning(
                    "%s API returned %d", request.provider.value, resp.status_code,
                )
                raise ApiError(resp.status_code, body)

            async for chunk in resp.aiter_bytes():
                for payload in parser.feed(chunk):
                    stats.payloads += 1
                    if await adapter.handle(payload):
                        break
                if adapter.finished:
                    break
    except httpx.HTTPError as e:
        raise HttpTransportError(f"{request.provider.value} request failed: {e}") from e

    if not adapter.finished:
        for payload in parser.flush():
            stats.payloads += 1
            await adapter.handle(payload)
    await adapter.end()

    stats.skipped = adapter.skipped
    stats.dropped_lines = parser.dropped_lines
    if stats.skipped:
        _logger.debug("%s: skipped %d malformed events", request.provider.value, stats.skipped)
    return stats
