"""Error taxonomy for notestream.

Every error carries a stable ``code`` that is copied into the
``StreamError`` of an errored terminal chunk.
"""

from __future__ import annotations


class NotestreamError(Exception):
    """Base class for all notestream errors."""

    code = "error"


class NoActiveProvider(NotestreamError):
    code = "no_active_provider"

    def __init__(self) -> None:
        super().__init__("No AI provider selected")


class NoApiKey(NotestreamError):
    code = "no_api_key"

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"No API key configured for provider: {provider}")


class UnsupportedProvider(NotestreamError):
    code = "unsupported_provider"

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Provider not supported: {provider}")


class HttpTransportError(NotestreamError):
    code = "http_error"


class ApiError(NotestreamError):
    """Non-success HTTP status; carries the raw response body."""

    code = "api_error"

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"API error ({status_code}): {body}")


class ToolArgumentError(NotestreamError):
    """Arguments of a completed tool call do not match its schema."""

    code = "tool_argument_error"

    def __init__(self, tool: str, detail: str) -> None:
        self.tool = tool
        self.detail = detail
        super().__init__(f"Invalid arguments for {tool}: {detail}")


class ModelNotDownloaded(NotestreamError):
    code = "model_not_downloaded"

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Model not downloaded: {provider}")


class ModelLoadError(NotestreamError):
    code = "model_load_error"


class ContextError(NotestreamError):
    code = "context_error"


class TokenizationError(NotestreamError):
    code = "tokenization_error"


class InferenceError(NotestreamError):
    code = "inference_error"
