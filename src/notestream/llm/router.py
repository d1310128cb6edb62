"""Provider router: one entry point for every text-generation backend.

``invoke()`` resolves the active provider and streams its output to the
EventBus as ``AI_STREAM_CHUNK`` events, finishing with exactly one
terminal chunk.  On a fatal error the terminal chunk carries a
``StreamError`` and the exception is re-raised to the caller.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from notestream.config import SettingsStore
from notestream.credentials import CredentialStore
from notestream.errors import NoActiveProvider, NoApiKey, NotestreamError, UnsupportedProvider
from notestream.events.bus import EventBus
from notestream.llm.local import LocalEngine
from notestream.llm.models import ModelManager
from notestream.llm.remote import build_request, stream_response
from notestream.streaming.sink import TextForwarder
from notestream.tools.assembler import ToolDispatcher, ToolOutcome
from notestream.tools.registry import ToolRegistry
from notestream.types import Provider, StreamError

_logger = logging.getLogger(__name__)

ACTIVE_PROVIDER_FILE = "active_provider.txt"


class InvocationInProgress(NotestreamError):
    code = "invocation_in_progress"

    def __init__(self) -> None:
        super().__init__("Another generation is already running")


@dataclass
class InvocationResult:
    provider: Provider
    text: str = ""
    fragments: int = 0
    finish_reason: str | None = None
    tool_outcomes: list[ToolOutcome] = field(default_factory=list)
    # remote streams only: events skipped as malformed, non-event lines dropped
    skipped_events: int = 0
    dropped_lines: int = 0


class ProviderRouter:
    """Dispatches prompts to the active provider.

    The active provider is router-owned state guarded by a lock and
    persisted under the data directory.  Only one invocation runs at a
    time; a concurrent call fails fast with ``InvocationInProgress``.
    """

    def __init__(
        self,
        settings: SettingsStore,
        credentials: CredentialStore,
        models: ModelManager,
        registry: ToolRegistry,
        bus: EventBus,
        client: httpx.AsyncClient | None = None,
        engine: LocalEngine | None = None,
    ) -> None:
        self._settings = settings
        self._credentials = credentials
        self._models = models
        self._registry = registry
        self._bus = bus
        self._client = client
        self._engine = engine or LocalEngine(models, settings)

        self._state_lock = threading.RLock()
        self._invoke_lock = threading.Lock()
        self._active: Provider | None = self._restore()

    # ------------------------------------------------------------------
    # Active provider
    # ------------------------------------------------------------------

    @property
    def state_file(self) -> Path:
        return self._settings.data_path / ACTIVE_PROVIDER_FILE

    @property
    def active_provider(self) -> Provider | None:
        with self._state_lock:
            return self._active

    def set_active_provider(self, provider: Provider | str | None) -> None:
        """Select (or clear, with ``None``) the provider and persist the choice."""
        if isinstance(provider, str):
            provider = Provider.from_str(provider)
        with self._state_lock:
            self._active = provider
            path = self.state_file
            if provider is None:
                path.unlink(missing_ok=True)
            else:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(provider.value, encoding="utf-8")
        _logger.info("Active provider: %s", provider.value if provider else "none")

    def configured_providers(self) -> list[Provider]:
        """Providers usable right now (remote ones need a credential)."""
        return self._credentials.configured_providers()

    def _restore(self) -> Provider | None:
        path = self.state_file
        if not path.is_file():
            return None
        value = path.read_text(encoding="utf-8").strip()
        if not value:
            return None
        try:
            provider = Provider.from_str(value)
        except UnsupportedProvider:
            _logger.warning("Ignoring unknown saved provider: %s", value)
            return None
        if not self._credentials.has_key(provider):
            _logger.info("Saved provider %s has no API key, not restoring", provider.value)
            return None
        return provider

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(self, prompt: str, context: str = "") -> InvocationResult:
        """Generate a response for *prompt* with *context* from the active provider."""
        if not self._invoke_lock.acquire(blocking=False):
            raise InvocationInProgress()
        try:
            try:
                result = await self._dispatch(prompt, context)
            except NotestreamError as e:
                _logger.error("Generation failed: %s", e)
                await self._bus.emit_done(StreamError(code=e.code, message=str(e)))
                raise
            except Exception as e:
                _logger.exception("Unexpected generation failure")
                await self._bus.emit_done(StreamError(code="internal_error", message=str(e)))
                raise
            await self._bus.emit_done()
            return result
        finally:
            self._invoke_lock.release()

    @property
    def busy(self) -> bool:
        return self._invoke_lock.locked()

    async def _dispatch(self, prompt: str, context: str) -> InvocationResult:
        provider = self.active_provider
        if provider is None:
            raise NoActiveProvider()
        _logger.info("Invoking %s", provider.value)
        if provider.requires_api_key:
            return await self._invoke_remote(provider, prompt, context)
        return await self._invoke_local(provider, prompt, context)

    async def _invoke_local(self, provider: Provider, prompt: str, context: str) -> InvocationResult:
        forwarder = TextForwarder(self._bus)
        session = await self._engine.run(provider, prompt, context, forwarder.on_text)
        return InvocationResult(
            provider=provider,
            text=forwarder.text,
            fragments=forwarder.fragments,
            finish_reason=session.stop_reason.value if session.stop_reason else None,
        )

    async def _invoke_remote(self, provider: Provider, prompt: str, context: str) -> InvocationResult:
        api_key = self._credentials.get(provider)
        if not api_key:
            raise NoApiKey(provider.value)

        handler: TextForwarder
        if provider is Provider.OPENAI:
            handler = ToolDispatcher(self._bus, self._registry)
        else:
            handler = TextForwarder(self._bus)

        request = build_request(
            provider,
            api_key,
            self._settings.provider_model(provider),
            prompt,
            context,
            registry=self._registry,
            base_url=self._settings.provider_base_url(provider),
        )

        client = self._client or httpx.AsyncClient(timeout=httpx.Timeout(120, connect=30))
        try:
            stats = await stream_response(client, request, handler)
        finally:
            if self._client is None:
                await client.aclose()

        result = InvocationResult(
            provider=provider,
            text=handler.text,
            fragments=handler.fragments,
            finish_reason=handler.finish_reason,
            skipped_events=stats.skipped,
            dropped_lines=stats.dropped_lines,
        )
        if isinstance(handler, ToolDispatcher):
            result.tool_outcomes = list(handler.outcomes)
        return result
