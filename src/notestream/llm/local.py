"""Local GGUF inference with a manual decode loop.

Lifecycle of one invocation::

    IDLE -> MODEL_LOADING -> CONTEXT_READY -> DECODING -> FINISHED | ABORTED

The prompt is decoded as a batch, then one token is generated per step
with the repetition-penalty greedy sampler until the model emits an
end-of-generation token, the text contains a stop marker, or the token
budget runs out.  The loop is CPU/GPU bound and runs on a worker thread;
fragments are handed back to the event loop in generation order.
"""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, Sequence

import numpy as np

from notestream.config import SettingsStore
from notestream.errors import (
    ContextError,
    InferenceError,
    ModelLoadError,
    ModelNotDownloaded,
    NotestreamError,
    TokenizationError,
    UnsupportedProvider,
)
from notestream.llm.models import ModelManager
from notestream.llm.prompts import local_prompt
from notestream.llm.sampling import PENALTY_WINDOW, REPETITION_PENALTY, recent_window, select_token
from notestream.types import Provider

_logger = logging.getLogger(__name__)

N_CTX = 2048
N_BATCH = 512
GPU_OFFLOAD_LAYERS = 32
MAX_NEW_TOKENS = 512

STOP_SEQUENCES = (
    "Kysymys:",
    "Käyttäjä:",
    "Expected Output:",
    "User Request:",
    "Instruction:",
    "Vastaus:",
    "<|eot_id|>",
    "<|end_of_text|>",
    "\n\n\n",
)

_SKIPPED_PIECES = frozenset({"<unk>", " <unk>"})
_EOG_MARKERS = ("<|eot_id|>", "<|end_of_text|>", "<|im_end|>", "</s>")


class EngineState(enum.Enum):
    IDLE = "idle"
    MODEL_LOADING = "model_loading"
    CONTEXT_READY = "context_ready"
    DECODING = "decoding"
    FINISHED = "finished"
    ABORTED = "aborted"


class StopReason(str, enum.Enum):
    END_OF_GENERATION = "end_of_generation"
    STOP_SEQUENCE = "stop_sequence"
    MAX_TOKENS = "max_tokens"
    CONTEXT_FULL = "context_full"


# ---------------------------------------------------------------------------
# Model backend
# ---------------------------------------------------------------------------

class ModelBackend(Protocol):
    """The slice of a llama.cpp model + context the engine drives."""

    @property
    def n_ctx(self) -> int: ...

    def reset(self) -> None: ...

    def tokenize(self, text: str, add_bos: bool = True) -> list[int]: ...

    def eval(self, tokens: Sequence[int]) -> None:
        """Decode *tokens* at the next positions of the context."""

    def logits(self) -> np.ndarray:
        """Scores over the vocabulary for the last decoded position."""

    def is_eog(self, token: int) -> bool: ...

    def token_to_piece(self, token: int) -> bytes: ...

    def close(self) -> None: ...


ModelLoader = Callable[[Path, int, int, int], ModelBackend]


class LlamaCppBackend:
    """``ModelBackend`` over ``llama_cpp.Llama`` (llama-cpp-python)."""

    def __init__(self, llama: Any) -> None:
        self._llama = llama
        self._eog_ids = self._collect_eog_ids()

    @classmethod
    def load(cls, path: Path, n_gpu_layers: int, n_ctx: int, n_batch: int) -> LlamaCppBackend:
        try:
            from llama_cpp import Llama
        except ImportError as e:
            raise ModelLoadError(
                "llama-cpp-python is not installed (pip install 'notestream[local]')"
            ) from e

        try:
            llama = Llama(
                model_path=str(path),
                n_gpu_layers=n_gpu_layers,
                n_ctx=n_ctx,
                n_batch=n_batch,
                verbose=False,
            )
        except (ValueError, RuntimeError, OSError) as e:
            raise ModelLoadError(f"Failed to load model: {e}") from e
        return cls(llama)

    @property
    def n_ctx(self) -> int:
        return int(self._llama.n_ctx())

    def reset(self) -> None:
        self._llama.reset()

    def tokenize(self, text: str, add_bos: bool = True) -> list[int]:
        return list(self._llama.tokenize(text.encode("utf-8"), add_bos=add_bos, special=True))

    def eval(self, tokens: Sequence[int]) -> None:
        # Llama.eval splits the input into n_batch sized batches
        self._llama.eval(list(tokens))

    def logits(self) -> np.ndarray:
        return self._llama.scores[self._llama.n_tokens - 1]

    def is_eog(self, token: int) -> bool:
        return token in self._eog_ids

    def token_to_piece(self, token: int) -> bytes:
        return self._llama.detokenize([token])

    def close(self) -> None:
        close = getattr(self._llama, "close", None)
        if close is not None:
            close()

    def _collect_eog_ids(self) -> frozenset[int]:
        ids = {int(self._llama.token_eos())}
        for marker in _EOG_MARKERS:
            encoded = self._llama.tokenize(marker.encode("utf-8"), add_bos=False, special=True)
            if len(encoded) == 1:
                ids.add(int(encoded[0]))
        return frozenset(ids)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@dataclass
class GenerationSession:
    """State of one decode run."""

    provider: Provider
    prompt_tokens: int = 0
    tokens: list[int] = field(default_factory=list)
    text: str = ""
    fragments: int = 0
    stop_reason: StopReason | None = None
    stop_sequence: str | None = None


def find_stop_sequence(text: str, stop_sequences: Sequence[str] = STOP_SEQUENCES) -> str | None:
    for seq in stop_sequences:
        if seq in text:
            return seq
    return None


class LocalEngine:
    """Runs one local generation at a time."""

    def __init__(
        self,
        models: ModelManager,
        settings: SettingsStore,
        loader: ModelLoader | None = None,
        max_new_tokens: int = MAX_NEW_TOKENS,
        n_ctx: int = N_CTX,
        n_batch: int = N_BATCH,
        stop_sequences: Sequence[str] = STOP_SEQUENCES,
    ) -> None:
        self._models = models
        self._settings = settings
        self._loader: ModelLoader = loader or LlamaCppBackend.load
        self.max_new_tokens = max_new_tokens
        self.n_ctx = n_ctx
        self.n_batch = n_batch
        self.stop_sequences = tuple(stop_sequences)
        self.state = EngineState.IDLE

    async def run(
        self,
        provider: Provider,
        prompt: str,
        context: str,
        on_fragment: Callable[[str], Awaitable[None]],
    ) -> GenerationSession:
        """Generate on a worker thread, awaiting *on_fragment* per fragment.

        Fragments are delivered in generation order.  Errors from the
        worker propagate once every fragment produced before the failure
        has been delivered.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[str | None] = asyncio.Queue()

        def emit(text: str) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, text)

        worker = asyncio.ensure_future(
            asyncio.to_thread(self.generate, provider, prompt, context, emit)
        )
        worker.add_done_callback(lambda _: queue.put_nowait(None))

        try:
            while (fragment := await queue.get()) is not None:
                await on_fragment(fragment)
        finally:
            # the thread cannot be interrupted, so wait for it either way
            if not worker.done():
                await asyncio.wait({worker})
            if not worker.cancelled() and worker.exception() is not None:
                _logger.debug("Generation worker ended with %r", worker.exception())
        return worker.result()

    def generate(
        self,
        provider: Provider,
        prompt: str,
        context: str,
        emit: Callable[[str], None],
    ) -> GenerationSession:
        """Blocking generation; *emit* is called once per text fragment."""
        if provider.requires_api_key:
            raise UnsupportedProvider(provider.value)

        session = GenerationSession(provider=provider)
        backend: ModelBackend | None = None
        try:
            backend = self._load(provider)
            prompt_tokens = self._prepare(backend, provider, prompt, context)
            session.prompt_tokens = len(prompt_tokens)
            self._decode(backend, prompt_tokens, session, emit)
        except NotestreamError:
            self.state = EngineState.ABORTED
            raise
        except Exception as e:
            self.state = EngineState.ABORTED
            raise InferenceError(f"Inference failed: {e}") from e
        finally:
            if backend is not None:
                backend.close()

        self.state = EngineState.FINISHED
        _logger.info(
            "Local inference completed: generated %d tokens, emitted %d chunks (%s)",
            len(session.tokens), session.fragments, session.stop_reason.value,
        )
        return session

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _load(self, provider: Provider) -> ModelBackend:
        self.state = EngineState.MODEL_LOADING
        path = self._models.weights_path(provider)
        if path is None or not path.is_file():
            raise ModelNotDownloaded(provider.value)

        n_gpu_layers = 0
        if self._settings.gpu_offload_requested():
            n_gpu_layers = GPU_OFFLOAD_LAYERS
            _logger.info(
                "GPU acceleration enabled (%s), offloading %d layers",
                self._settings.gpu_type().value, n_gpu_layers,
            )

        _logger.info("Loading model: %s", path)
        try:
            return self._loader(path, n_gpu_layers, self.n_ctx, self.n_batch)
        except NotestreamError:
            raise
        except Exception as e:
            raise ModelLoadError(f"Failed to load model: {e}") from e

    def _prepare(
        self,
        backend: ModelBackend,
        provider: Provider,
        prompt: str,
        context: str,
    ) -> list[int]:
        try:
            backend.reset()
        except Exception as e:
            raise ContextError(f"Failed to create context: {e}") from e
        _logger.info("Context ready with n_ctx=%d, n_batch=%d", self.n_ctx, self.n_batch)
        self.state = EngineState.CONTEXT_READY

        formatted = local_prompt(provider, prompt, context)
        try:
            tokens = backend.tokenize(formatted, add_bos=True)
        except Exception as e:
            raise TokenizationError(f"Tokenization failed: {e}") from e
        if not tokens:
            raise TokenizationError("Prompt produced no tokens")
        if len(tokens) >= self.n_ctx:
            raise ContextError(
                f"Prompt of {len(tokens)} tokens does not fit the {self.n_ctx} token context"
            )
        _logger.info("Prompt tokenized: %d tokens", len(tokens))
        return tokens

    def _decode(
        self,
        backend: ModelBackend,
        prompt_tokens: list[int],
        session: GenerationSession,
        emit: Callable[[str], None],
    ) -> None:
        self.state = EngineState.DECODING
        _logger.info("Starting initial decode of %d prompt tokens", len(prompt_tokens))
        try:
            backend.eval(prompt_tokens)
        except Exception as e:
            raise InferenceError(f"Initial decode failed: {e}") from e

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        n_cur = len(prompt_tokens)

        while True:
            if len(session.tokens) >= self.max_new_tokens:
                session.stop_reason = StopReason.MAX_TOKENS
                break
            if n_cur >= self.n_ctx:
                session.stop_reason = StopReason.CONTEXT_FULL
                break

            try:
                logits = backend.logits()
            except Exception as e:
                raise InferenceError(f"Failed to read logits: {e}") from e
            token = select_token(
                logits, recent_window(session.tokens, PENALTY_WINDOW), REPETITION_PENALTY,
            )
            session.tokens.append(token)
            step = len(session.tokens)

            if backend.is_eog(token):
                _logger.info("End-of-generation token reached after %d tokens", step)
                session.stop_reason = StopReason.END_OF_GENERATION
                break

            piece = decoder.decode(backend.token_to_piece(token))
            session.text += piece
            marker = find_stop_sequence(session.text, self.stop_sequences)
            if marker is not None:
                _logger.info("Stop sequence %r detected. Stopping.", marker)
                session.stop_reason = StopReason.STOP_SEQUENCE
                session.stop_sequence = marker
                break

            if not piece:
                _logger.debug("Token %d (id %d) produced no text yet", step, token)
            elif piece in _SKIPPED_PIECES:
                _logger.debug("Skipping <unk> token %d (id %d)", step, token)
            else:
                emit(piece)
                session.fragments += 1

            if step % 50 == 0:
                _logger.info(
                    "Progress: generated %d tokens, emitted %d chunks", step, session.fragments,
                )

            if len(session.tokens) >= self.max_new_tokens:
                continue
            try:
                backend.eval([token])
            except Exception as e:
                raise InferenceError(f"Decode step {step} failed: {e}") from e
            n_cur += 1
