"""Shared data types for notestream."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any

from notestream.errors import UnsupportedProvider


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class Provider(str, enum.Enum):
    """Text-generation backends the router can dispatch to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    PORO2_8B = "poro2_8b"
    FINCHAT_SUMMARY = "finchat_summary"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def requires_api_key(self) -> bool:
        """Remote providers need a credential; local GGUF models do not."""
        return self in (Provider.OPENAI, Provider.ANTHROPIC, Provider.GOOGLE)

    @classmethod
    def from_str(cls, value: str) -> Provider:
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise UnsupportedProvider(value) from None


_DISPLAY_NAMES = {
    Provider.OPENAI: "OpenAI",
    Provider.ANTHROPIC: "Anthropic",
    Provider.GOOGLE: "Google",
    Provider.PORO2_8B: "Poro 2 8B Instruct",
    Provider.FINCHAT_SUMMARY: "FIN Chat Summarization",
}


class GpuType(str, enum.Enum):
    CPU = "cpu"
    VULKAN = "vulkan"
    CUDA = "cuda"
    ROCM = "rocm"

    @classmethod
    def from_str(cls, value: str) -> GpuType:
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.CPU


# ---------------------------------------------------------------------------
# Tool types
# ---------------------------------------------------------------------------

@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    type: str  # string, integer, boolean, array, object
    description: str
    required: bool = True


@dataclass
class ToolCall:
    """A completed tool invocation reconstructed from stream fragments."""

    id: str
    name: str
    arguments: str  # raw JSON text as streamed


@dataclass
class ToolResult:
    """Result of a tool execution."""

    success: bool
    output: str
    error: str = ""
    mutated: bool = False


# ---------------------------------------------------------------------------
# Stream output
# ---------------------------------------------------------------------------

@dataclass
class StreamError:
    """Side-channel error attached to an errored terminal chunk."""

    code: str
    message: str


@dataclass
class StreamChunk:
    """One fragment of generated text, or the terminal marker."""

    chunk: str
    done: bool = False
    error: StreamError | None = None

    @property
    def failed(self) -> bool:
        return self.done and self.error is not None


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Events delivered through the EventBus."""

    AI_STREAM_CHUNK = "ai.stream_chunk"

    TOOL_EXECUTED = "tool.executed"
    TOOL_ERROR = "tool.error"
    DATA_CHANGED = "data.changed"

    MODEL_DOWNLOAD_PROGRESS = "model.download_progress"
    MODEL_DOWNLOAD_COMPLETE = "model.download_complete"


@dataclass
class AppEvent:
    """Event emitted via the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def chunk(self) -> StreamChunk | None:
        """The ``StreamChunk`` payload of an ``AI_STREAM_CHUNK`` event."""
        return self.data.get("chunk")
