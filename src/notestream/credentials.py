"""API key lookup for remote providers.

Keys are resolved from the environment first and the settings file last,
so a key never has to be written to disk.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping

from notestream.config import SettingsStore
from notestream.types import Provider

_logger = logging.getLogger(__name__)

# Conventional variable names checked after NOTESTREAM_<PROVIDER>_API_KEY
_CONVENTIONAL_VARS: dict[Provider, tuple[str, ...]] = {
    Provider.OPENAI: ("OPENAI_API_KEY",),
    Provider.ANTHROPIC: ("ANTHROPIC_API_KEY",),
    Provider.GOOGLE: ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
}


class CredentialStore:
    """Resolves a secret for a provider, or ``None`` when absent."""

    def __init__(
        self,
        settings: SettingsStore | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._settings = settings
        self._environ = os.environ if environ is None else environ

    def get(self, provider: Provider) -> str | None:
        if not provider.requires_api_key:
            return None
        names = (f"NOTESTREAM_{provider.value.upper()}_API_KEY",)
        names += _CONVENTIONAL_VARS.get(provider, ())
        for name in names:
            value = self._environ.get(name, "").strip()
            if value:
                _logger.debug("Using %s for %s", name, provider.value)
                return value
        if self._settings is not None:
            value = (self._settings.api_key(provider) or "").strip()
            if value:
                return value
        return None

    def has_key(self, provider: Provider) -> bool:
        """Local providers always count as configured."""
        if not provider.requires_api_key:
            return True
        return self.get(provider) is not None

    def configured_providers(self) -> list[Provider]:
        return [p for p in Provider if self.has_key(p)]
