"""Remote streaming, local inference and provider routing."""

from notestream.llm.local import EngineState, LocalEngine
from notestream.llm.models import ModelManager
from notestream.llm.router import InvocationInProgress, InvocationResult, ProviderRouter

__all__ = [
    "EngineState",
    "InvocationInProgress",
    "InvocationResult",
    "LocalEngine",
    "ModelManager",
    "ProviderRouter",
]
