"""Tool registry: schema export and JSON-argument execution."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from notestream.errors import ToolArgumentError
from notestream.tools.base import Tool
from notestream.types import ToolResult

_logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name-indexed tools, executed with raw JSON argument strings."""

    def __init__(self) -> None:
        self._by_name: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._by_name[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._by_name.get(name)

    def tool_names(self) -> list[str]:
        return [*self._by_name]

    def parse_arguments(self, tool: Tool, args_json: str) -> BaseModel:
        """Validate *args_json* against the tool's argument model.

        Empty input counts as ``{}``.  Raises ``ToolArgumentError`` on
        malformed JSON, a non-object value or a schema mismatch.
        """
        try:
            raw = json.loads(args_json.strip() or "{}")
        except ValueError as e:
            raise ToolArgumentError(tool.name, f"invalid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ToolArgumentError(tool.name, "arguments must be a JSON object")
        try:
            return tool.args_model.model_validate(raw)
        except ValidationError as e:
            raise ToolArgumentError(tool.name, str(e)) from e

    async def execute_json(self, tool_name: str, args_json: str) -> ToolResult:
        """Run *tool_name* with *args_json*.

        An unknown tool or an exception inside the tool yields a failed
        ``ToolResult``; bad arguments raise ``ToolArgumentError``.
        """
        tool = self._by_name.get(tool_name)
        if tool is None:
            known = ", ".join(self._by_name)
            return ToolResult(False, "", error=f"Unknown tool: {tool_name}. Available: {known}")

        args = self.parse_arguments(tool, args_json)
        try:
            result = await tool.execute(args)
        except Exception as e:
            _logger.exception("Tool %s failed", tool_name)
            return ToolResult(
                False, "", error=f"Tool '{tool_name}' execution failed: {type(e).__name__}: {e}",
            )
        if result.success:
            _logger.info("Tool %s succeeded", tool_name)
        else:
            _logger.warning("Tool %s failed: %s", tool_name, result.error)
        return result

    def get_openai_schemas(self) -> list[dict[str, Any]]:
        return [tool.to_openai_schema() for tool in self._by_name.values()]
