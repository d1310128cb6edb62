"""Tool system for notestream."""

from notestream.tools.assembler import ToolCallAssembler, ToolDispatcher
from notestream.tools.base import Tool
from notestream.tools.notes import register_note_tools
from notestream.tools.registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolCallAssembler",
    "ToolDispatcher",
    "ToolRegistry",
    "register_note_tools",
]
