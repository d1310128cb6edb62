"""Local GGUF model provisioning: location, download and removal.

Models live in ``<data_dir>/models``.  Their source is taken from the
``local_models`` section of the settings (a custom URL wins over a
Hugging Face ``repo``/``filename`` pair).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from notestream.config import SettingsStore
from notestream.errors import ApiError, HttpTransportError, NotestreamError, UnsupportedProvider
from notestream.events.bus import EventBus
from notestream.types import AppEvent, EventType, Provider

_logger = logging.getLogger(__name__)

_HF_RESOLVE = "https://huggingface.co/{repo}/resolve/main/{filename}"

# Used when the settings carry no entry for the provider
_DEFAULT_SOURCES: dict[Provider, tuple[str, str]] = {
    Provider.PORO2_8B: (
        "mradermacher/Llama-Poro-2-8B-Instruct-GGUF",
        "Llama-Poro-2-8B-Instruct.Q4_K_M.gguf",
    ),
}

# Minimum change in percentage between two progress events
_PROGRESS_STEP = 0.5


class ModelNotConfigured(NotestreamError):
    code = "model_not_configured"

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"No download source configured for local model: {provider}")


@dataclass
class ModelStatus:
    provider: str
    is_downloaded: bool
    file_size: int | None = None
    path: str | None = None


class ModelManager:
    """Resolves, downloads and deletes local model weights."""

    def __init__(
        self,
        settings: SettingsStore,
        bus: EventBus | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._bus = bus
        self._client = client

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def model_source(self, provider: Provider) -> tuple[str, str]:
        """Return ``(download_url, filename)`` for a local provider."""
        if provider.requires_api_key:
            raise UnsupportedProvider(provider.value)

        config = self._settings.local_model_config(provider)
        if config is not None:
            if config.custom_url:
                filename = config.custom_url.rstrip("/").split("/")[-1].split("?")[0]
                return config.custom_url, filename or "model.gguf"
            if config.repo and config.filename:
                url = _HF_RESOLVE.format(repo=config.repo, filename=config.filename)
                return url, config.filename

        if provider in _DEFAULT_SOURCES:
            repo, filename = _DEFAULT_SOURCES[provider]
            return _HF_RESOLVE.format(repo=repo, filename=filename), filename
        raise ModelNotConfigured(provider.value)

    def weights_path(self, provider: Provider) -> Path | None:
        """Where the weights for *provider* live, or ``None`` if unconfigured."""
        try:
            _, filename = self.model_source(provider)
        except ModelNotConfigured:
            return None
        return self._settings.models_dir / filename

    def is_downloaded(self, provider: Provider) -> bool:
        path = self.weights_path(provider)
        return path is not None and path.is_file()

    def status(self, provider: Provider) -> ModelStatus:
        path = self.weights_path(provider)
        if path is None or not path.is_file():
            return ModelStatus(provider=provider.value, is_downloaded=False)
        return ModelStatus(
            provider=provider.value,
            is_downloaded=True,
            file_size=path.stat().st_size,
            path=str(path),
        )

    # ------------------------------------------------------------------
    # Download / delete
    # ------------------------------------------------------------------

    async def download(self, provider: Provider) -> Path:
        """Stream the weights to disk, emitting progress events."""
        url, filename = self.model_source(provider)
        target = self._settings.models_dir / filename

        if target.is_file():
            _logger.info("Model already downloaded: %s", target)
            await self._emit_complete(provider, target)
            return target

        target.parent.mkdir(parents=True, exist_ok=True)
        temp = target.with_suffix(".tmp")
        client = self._client or httpx.AsyncClient(
            follow_redirects=True, timeout=httpx.Timeout(60, connect=30),
        )
        _logger.info("Downloading %s model from %s", provider.value, url)

        try:
            async with client.stream("GET", url) as resp:
                if not resp.is_success:
                    body = (await resp.aread()).decode(errors="replace")
                    raise ApiError(resp.status_code, body)
                total = resp.headers.get("content-length")
                total_bytes = int(total) if total and total.isdigit() else None
                await self._write_stream(provider, resp, temp, total_bytes)
        except httpx.HTTPError as e:
            temp.unlink(missing_ok=True)
            raise HttpTransportError(f"Model download failed: {e}") from e
        except Exception:
            temp.unlink(missing_ok=True)
            raise
        finally:
            if self._client is None:
                await client.aclose()

        await asyncio.to_thread(temp.replace, target)
        _logger.info("Model downloaded successfully: %s", target)
        await self._emit_complete(provider, target)
        return target

    async def delete(self, provider: Provider) -> bool:
        """Remove downloaded weights.  Returns ``True`` if a file was deleted."""
        path = self.weights_path(provider)
        if path is None or not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        _logger.info("Model deleted: %s", path)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _write_stream(
        self,
        provider: Provider,
        resp: httpx.Response,
        temp: Path,
        total_bytes: int | None,
    ) -> None:
        downloaded = 0
        last_pct = -1.0
        with open(temp, "wb") as f:
            async for chunk in resp.aiter_bytes():
                f.write(chunk)
                downloaded += len(chunk)
                pct = downloaded / total_bytes * 100.0 if total_bytes else 0.0
                complete = total_bytes is not None and downloaded == total_bytes
                if abs(pct - last_pct) >= _PROGRESS_STEP or complete:
                    last_pct = pct
                    await self._emit(AppEvent(
                        type=EventType.MODEL_DOWNLOAD_PROGRESS,
                        data={
                            "provider": provider.value,
                            "bytes_downloaded": downloaded,
                            "total_bytes": total_bytes,
                            "percentage": pct,
                        },
                    ))

    async def _emit_complete(self, provider: Provider, path: Path) -> None:
        await self._emit(AppEvent(
            type=EventType.MODEL_DOWNLOAD_COMPLETE,
            data={"provider": provider.value, "path": str(path)},
        ))

    async def _emit(self, event: AppEvent) -> None:
        if self._bus is not None:
            await self._bus.emit(event)
