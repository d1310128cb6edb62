"""Shared fixtures for notestream tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from notestream.config import LocalModelSettings, Settings, SettingsStore
from notestream.events.bus import EventBus
from notestream.types import AppEvent, EventType, Provider, StreamChunk


class ChunkRecorder:
    """Collects ``AI_STREAM_CHUNK`` payloads from a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.chunks: list[StreamChunk] = []
        bus.subscribe(EventType.AI_STREAM_CHUNK, self._on_chunk)

    def _on_chunk(self, event: AppEvent) -> None:
        self.chunks.append(event.chunk)

    @property
    def fragments(self) -> list[str]:
        return [c.chunk for c in self.chunks if not c.done]

    @property
    def terminals(self) -> list[StreamChunk]:
        return [c for c in self.chunks if c.done]


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def settings(data_dir: Path) -> SettingsStore:
    return SettingsStore(Settings(data_dir=str(data_dir)))


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> ChunkRecorder:
    return ChunkRecorder(bus)


@pytest.fixture
def weights(settings: SettingsStore) -> Path:
    """A configured, downloaded Poro model file."""
    settings.set_local_model(
        Provider.PORO2_8B, LocalModelSettings(repo="org/repo", filename="poro.gguf"),
    )
    path = settings.models_dir / "poro.gguf"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"GGUF")
    return path
