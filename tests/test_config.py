"""Tests for config loading, the settings store and credential lookup."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
import yaml

from notestream.config import (
    CONFIG_FILENAME,
    LocalModelSettings,
    Settings,
    SettingsStore,
    find_config,
    load_config,
)
from notestream.credentials import CredentialStore
from notestream.errors import UnsupportedProvider
from notestream.types import GpuType, Provider


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults_when_no_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        settings, path = load_config()
        assert path is None
        assert settings.providers["openai"].model == "gpt-4o"
        assert settings.gpu_type is GpuType.CPU

    def test_explicit_path(self, tmp_path):
        cfg = _write(tmp_path / "custom.yaml", """\
            providers:
              anthropic:
                model: claude-3-5-haiku
                custom_model: my-fine-tune
            gpu_type: cuda
            data_dir: /tmp/ns
        """)
        settings, path = load_config(cfg)
        assert path == cfg.resolve()
        assert settings.providers["anthropic"].effective_model == "my-fine-tune"
        assert settings.gpu_type is GpuType.CUDA
        assert settings.models_dir == Path("/tmp/ns/models")

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            find_config(tmp_path / "nope.yaml")

    def test_cwd_discovery(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _write(tmp_path / CONFIG_FILENAME, "gpu_type: vulkan\n")
        settings, path = load_config()
        assert path == (tmp_path / CONFIG_FILENAME).resolve()
        assert settings.gpu_type is GpuType.VULKAN

    def test_empty_file(self, tmp_path):
        settings, _ = load_config(_write(tmp_path / "empty.yaml", ""))
        assert settings == Settings()


class TestSettingsStore:
    def test_provider_model_override(self, settings: SettingsStore):
        assert settings.provider_model(Provider.GOOGLE) == "gemini-2.5-pro"
        settings.set_provider_model(Provider.GOOGLE, "gemini-2.5-flash")
        assert settings.provider_model(Provider.GOOGLE) == "gemini-2.5-flash"
        settings.set_provider_model(Provider.GOOGLE, "")
        assert settings.provider_model(Provider.GOOGLE) == "gemini-2.5-pro"

    def test_gpu_offload(self, settings: SettingsStore):
        assert not settings.gpu_offload_requested()
        settings.set_gpu_type(GpuType.ROCM)
        assert settings.gpu_offload_requested()

    def test_local_model_config_is_copy(self, settings: SettingsStore):
        cfg = settings.local_model_config(Provider.PORO2_8B)
        cfg.filename = "changed.gguf"
        assert settings.local_model_config(Provider.PORO2_8B).filename != "changed.gguf"

    def test_save_round_trip(self, settings: SettingsStore, tmp_path):
        settings.set_local_model(
            Provider.FINCHAT_SUMMARY, LocalModelSettings(repo="org/fin", filename="fin.gguf"),
        )
        target = settings.save(tmp_path / "saved.yaml")
        raw = yaml.safe_load(target.read_text(encoding="utf-8"))
        assert raw["local_models"]["finchat_summary"]["filename"] == "fin.gguf"

        reloaded = SettingsStore.load(target)
        assert reloaded.local_model_config(Provider.FINCHAT_SUMMARY).repo == "org/fin"
        assert reloaded.path == target.resolve()


class TestCredentials:
    def test_prefixed_variable_wins(self):
        creds = CredentialStore(environ={
            "NOTESTREAM_OPENAI_API_KEY": "prefixed",
            "OPENAI_API_KEY": "plain",
        })
        assert creds.get(Provider.OPENAI) == "prefixed"

    def test_gemini_variable(self):
        creds = CredentialStore(environ={"GEMINI_API_KEY": "g"})
        assert creds.get(Provider.GOOGLE) == "g"

    def test_settings_fallback(self):
        store = SettingsStore(Settings(api_keys={"anthropic": "from-file"}))
        assert CredentialStore(store, environ={}).get(Provider.ANTHROPIC) == "from-file"

    def test_empty_is_absent(self):
        creds = CredentialStore(environ={"OPENAI_API_KEY": "  "})
        assert creds.get(Provider.OPENAI) is None
        assert not creds.has_key(Provider.OPENAI)

    def test_local_providers(self):
        creds = CredentialStore(environ={})
        assert creds.get(Provider.PORO2_8B) is None
        assert creds.has_key(Provider.PORO2_8B)
        assert creds.configured_providers() == [Provider.PORO2_8B, Provider.FINCHAT_SUMMARY]


class TestProviderParsing:
    def test_from_str(self):
        assert Provider.from_str(" OpenAI ") is Provider.OPENAI

    def test_unknown(self):
        with pytest.raises(UnsupportedProvider):
            Provider.from_str("mistral")

    def test_gpu_unknown_maps_to_cpu(self):
        assert GpuType.from_str("metal") is GpuType.CPU
