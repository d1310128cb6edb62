"""Tool abstraction shared by the note tools."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from notestream.types import ToolParameter, ToolResult


class Tool(ABC):
    """A side-effecting operation the model may request by name.

    Subclasses declare ``name``, ``description``, ``parameters`` (the
    advertised schema) and ``args_model`` (the pydantic model incoming
    JSON arguments are validated with), then implement ``execute()``.
    """

    name: str
    description: str
    parameters: list[ToolParameter]
    args_model: type[BaseModel]
    mutates: bool = False  # successful runs change stored data

    @abstractmethod
    async def execute(self, args: Any) -> ToolResult:
        """Run with an already validated ``args_model`` instance."""

    def to_openai_schema(self) -> dict[str, Any]:
        """The ``tools[]`` entry of a Chat Completions request."""
        schema: dict[str, Any] = {"type": "object", "properties": {}, "required": []}
        for param in self.parameters:
            schema["properties"][param.name] = {
                "type": param.type, "description": param.description,
            }
            if param.required:
                schema["required"].append(param.name)
        function = {"name": self.name, "description": self.description, "parameters": schema}
        return {"type": "function", "function": function}
