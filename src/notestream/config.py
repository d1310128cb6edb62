"""Configuration management for notestream.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./notestream.yaml``
  3. ``~/.notestream/notestream.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from notestream.types import GpuType, Provider

_logger = logging.getLogger(__name__)

CONFIG_FILENAME = "notestream.yaml"


class ProviderSettings(BaseModel):
    model: str = ""
    custom_model: str | None = None  # overrides ``model`` when set
    base_url: str | None = None  # endpoint override (proxies, tests)

    @property
    def effective_model(self) -> str:
        return self.custom_model or self.model


class LocalModelSettings(BaseModel):
    repo: str = ""  # Hugging Face repository
    filename: str = ""  # GGUF file inside the repository
    custom_url: str | None = None  # overrides repo/filename if set


def _default_providers() -> dict[str, ProviderSettings]:
    return {
        "openai": ProviderSettings(model="gpt-4o"),
        "anthropic": ProviderSettings(model="claude-sonnet-4-5"),
        "google": ProviderSettings(model="gemini-2.5-pro"),
    }


def _default_local_models() -> dict[str, LocalModelSettings]:
    return {
        "poro2_8b": LocalModelSettings(
            repo="mradermacher/Llama-Poro-2-8B-Instruct-GGUF",
            filename="Llama-Poro-2-8B-Instruct.Q4_K_M.gguf",
        ),
    }


class Settings(BaseModel):
    providers: dict[str, ProviderSettings] = Field(default_factory=_default_providers)
    local_models: dict[str, LocalModelSettings] = Field(
        default_factory=_default_local_models
    )
    gpu_type: GpuType = GpuType.CPU
    data_dir: str = "~/.notestream"
    api_keys: dict[str, str] = Field(default_factory=dict)

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def models_dir(self) -> Path:
        return self.data_path / "models"

    @property
    def notes_dir(self) -> Path:
        return self.data_path / "notes"


def find_config(config_path: str | Path | None = None) -> Path | None:
    """Resolve the config file to load, or ``None`` for built-in defaults.

    An explicit path that does not exist raises ``FileNotFoundError``.
    """
    if config_path is not None:
        p = Path(config_path).expanduser()
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return p

    for candidate in (
        Path.cwd() / CONFIG_FILENAME,
        Path.home() / ".notestream" / CONFIG_FILENAME,
    ):
        if candidate.exists():
            return candidate
    return None


def load_config(
    config_path: str | Path | None = None,
) -> tuple[Settings, Path | None]:
    """Load settings from YAML.

    Returns (settings, resolved_path).  *resolved_path* is ``None`` when
    no file was found and built-in defaults are used.
    """
    resolved = find_config(config_path)
    if resolved is None:
        _logger.info("No config file found, using defaults")
        return Settings(), None

    _logger.info("Loading config from %s", resolved)
    with open(resolved, encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}
    return Settings.model_validate(raw), resolved.resolve()


class SettingsStore:
    """Thread-safe holder for ``Settings`` with optional write-back.

    Supplies the per-provider model selection, local weights source and
    GPU preference consumed by the router and the local engine.
    """

    def __init__(self, settings: Settings | None = None, path: Path | None = None) -> None:
        self._settings = settings or Settings()
        self._path = path
        self._lock = threading.RLock()

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> SettingsStore:
        settings, path = load_config(config_path)
        return cls(settings, path)

    @property
    def path(self) -> Path | None:
        return self._path

    def snapshot(self) -> Settings:
        with self._lock:
            return self._settings.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def provider_model(self, provider: Provider) -> str:
        with self._lock:
            cfg = self._settings.providers.get(provider.value)
            return cfg.effective_model if cfg else ""

    def provider_base_url(self, provider: Provider) -> str | None:
        with self._lock:
            cfg = self._settings.providers.get(provider.value)
            return cfg.base_url if cfg else None

    def local_model_config(self, provider: Provider) -> LocalModelSettings | None:
        with self._lock:
            cfg = self._settings.local_models.get(provider.value)
            return cfg.model_copy() if cfg else None

    def gpu_type(self) -> GpuType:
        with self._lock:
            return self._settings.gpu_type

    def gpu_offload_requested(self) -> bool:
        return self.gpu_type() != GpuType.CPU

    def api_key(self, provider: Provider) -> str | None:
        with self._lock:
            return self._settings.api_keys.get(provider.value)

    @property
    def data_path(self) -> Path:
        with self._lock:
            return self._settings.data_path

    @property
    def models_dir(self) -> Path:
        with self._lock:
            return self._settings.models_dir

    @property
    def notes_dir(self) -> Path:
        with self._lock:
            return self._settings.notes_dir

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_provider_model(self, provider: Provider, model: str) -> None:
        with self._lock:
            cfg = self._settings.providers.setdefault(provider.value, ProviderSettings())
            cfg.custom_model = model or None

    def set_provider_base_url(self, provider: Provider, base_url: str | None) -> None:
        with self._lock:
            cfg = self._settings.providers.setdefault(provider.value, ProviderSettings())
            cfg.base_url = base_url or None

    def set_local_model(self, provider: Provider, config: LocalModelSettings) -> None:
        with self._lock:
            self._settings.local_models[provider.value] = config

    def set_gpu_type(self, gpu_type: GpuType) -> None:
        with self._lock:
            self._settings.gpu_type = gpu_type

    def save(self, path: Path | None = None) -> Path:
        """Write settings back to YAML (defaults to the loaded file)."""
        target = path or self._path or Path.home() / ".notestream" / CONFIG_FILENAME
        with self._lock:
            raw = self._settings.model_dump(mode="json", exclude_none=True)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            yaml.safe_dump(raw, f, sort_keys=False, allow_unicode=True)
        self._path = target
        _logger.debug("Saved settings to %s", target)
        return target
