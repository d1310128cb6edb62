"""Tests for local model provisioning."""

from __future__ import annotations

import httpx
import pytest

from notestream.config import LocalModelSettings, SettingsStore
from notestream.errors import ApiError, HttpTransportError, UnsupportedProvider
from notestream.events.bus import EventBus
from notestream.llm.models import ModelManager, ModelNotConfigured
from notestream.types import AppEvent, EventType, Provider

WEIGHTS = b"G" * 1000


async def _body(data: bytes, size: int):
    for i in range(0, len(data), size):
        yield data[i:i + size]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def configured(settings: SettingsStore) -> SettingsStore:
    settings.set_local_model(
        Provider.FINCHAT_SUMMARY,
        LocalModelSettings(custom_url="https://example.com/files/finchat.gguf?download=1"),
    )
    return settings


class TestModelSource:
    def test_default_poro(self, settings):
        url, filename = ModelManager(settings).model_source(Provider.PORO2_8B)
        assert filename == "Llama-Poro-2-8B-Instruct.Q4_K_M.gguf"
        assert url == (
            "https://huggingface.co/mradermacher/Llama-Poro-2-8B-Instruct-GGUF"
            "/resolve/main/Llama-Poro-2-8B-Instruct.Q4_K_M.gguf"
        )

    def test_custom_url_wins(self, configured):
        url, filename = ModelManager(configured).model_source(Provider.FINCHAT_SUMMARY)
        assert url.startswith("https://example.com/files/")
        assert filename == "finchat.gguf"

    def test_unconfigured(self, settings):
        manager = ModelManager(settings)
        with pytest.raises(ModelNotConfigured):
            manager.model_source(Provider.FINCHAT_SUMMARY)
        assert manager.weights_path(Provider.FINCHAT_SUMMARY) is None
        assert not manager.is_downloaded(Provider.FINCHAT_SUMMARY)

    def test_remote_provider(self, settings):
        with pytest.raises(UnsupportedProvider):
            ModelManager(settings).model_source(Provider.OPENAI)


class TestDownload:
    @pytest.mark.asyncio
    async def test_progress_and_completion(self, configured, bus: EventBus):
        events: list[AppEvent] = []
        bus.subscribe("*", events.append)

        def handler(request):
            return httpx.Response(
                200,
                headers={"content-length": str(len(WEIGHTS))},
                content=_body(WEIGHTS, 100),
            )

        manager = ModelManager(configured, bus, client=_client(handler))
        path = await manager.download(Provider.FINCHAT_SUMMARY)

        assert path.read_bytes() == WEIGHTS
        assert not path.with_suffix(".tmp").exists()
        progress = [e.data for e in events if e.type is EventType.MODEL_DOWNLOAD_PROGRESS]
        assert [p["bytes_downloaded"] for p in progress] == list(range(100, 1001, 100))
        assert progress[-1]["percentage"] == pytest.approx(100.0)
        assert progress[-1]["total_bytes"] == 1000
        assert events[-1].type is EventType.MODEL_DOWNLOAD_COMPLETE
        assert events[-1].data["path"] == str(path)

        status = manager.status(Provider.FINCHAT_SUMMARY)
        assert status.is_downloaded
        assert status.file_size == 1000

    @pytest.mark.asyncio
    async def test_existing_file_only_completes(self, configured, bus):
        events: list[AppEvent] = []
        bus.subscribe("*", events.append)
        target = configured.models_dir / "finchat.gguf"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"x")

        def handler(request):
            raise AssertionError("no request expected")

        await ModelManager(configured, bus, client=_client(handler)).download(
            Provider.FINCHAT_SUMMARY,
        )
        assert [e.type for e in events] == [EventType.MODEL_DOWNLOAD_COMPLETE]

    @pytest.mark.asyncio
    async def test_http_status_error(self, configured):
        def handler(request):
            return httpx.Response(404, content=b"Not Found")

        manager = ModelManager(configured, client=_client(handler))
        with pytest.raises(ApiError) as exc_info:
            await manager.download(Provider.FINCHAT_SUMMARY)
        assert exc_info.value.status_code == 404
        assert not manager.is_downloaded(Provider.FINCHAT_SUMMARY)

    @pytest.mark.asyncio
    async def test_transport_error_removes_partial_file(self, configured):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        manager = ModelManager(configured, client=_client(handler))
        with pytest.raises(HttpTransportError):
            await manager.download(Provider.FINCHAT_SUMMARY)
        assert list(configured.models_dir.glob("*")) == []


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete(self, configured):
        target = configured.models_dir / "finchat.gguf"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"x")
        manager = ModelManager(configured)

        assert await manager.delete(Provider.FINCHAT_SUMMARY)
        assert not target.exists()
        assert not await manager.delete(Provider.FINCHAT_SUMMARY)
