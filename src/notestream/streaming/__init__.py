"""Event-stream parsing for the cloud providers."""

from notestream.streaming.adapters import (
    AnthropicAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    ProtocolAdapter,
    StreamHandler,
    adapter_for,
)
from notestream.streaming.sse import SSELineParser

__all__ = [
    "AnthropicAdapter",
    "GoogleAdapter",
    "OpenAIAdapter",
    "ProtocolAdapter",
    "SSELineParser",
    "StreamHandler",
    "adapter_for",
]
