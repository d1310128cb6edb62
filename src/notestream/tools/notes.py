"""Note tools the model can call mid-stream."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from notestream.notes.store import NoteNotFound, NoteStore
from notestream.tools.base import Tool
from notestream.types import ToolParameter, ToolResult

if TYPE_CHECKING:
    from notestream.tools.registry import ToolRegistry

_PREVIEW_CHARS = 100


class CreateNoteArgs(BaseModel):
    content: str


class UpdateNoteArgs(BaseModel):
    id: str
    content: str


class DeleteNoteArgs(BaseModel):
    id: str


class ListNotesArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _NoteTool(Tool):
    def __init__(self, store: NoteStore) -> None:
        self._store = store


class CreateNoteTool(_NoteTool):
    name = "create_note"
    description = "Create a new sticky note card with the given content."
    mutates = True
    args_model = CreateNoteArgs
    parameters = [
        ToolParameter(
            name="content",
            type="string",
            description="The markdown content of the new note.",
        ),
    ]

    async def execute(self, args: CreateNoteArgs) -> ToolResult:
        note = await asyncio.to_thread(self._store.create, args.content)
        return ToolResult(
            success=True,
            output=f"Note created successfully. ID: {note.id}",
            mutated=True,
        )


class UpdateNoteTool(_NoteTool):
    name = "update_note"
    description = "Update the content of an existing note card."
    mutates = True
    args_model = UpdateNoteArgs
    parameters = [
        ToolParameter(
            name="id",
            type="string",
            description="The UUID of the note to update.",
        ),
        ToolParameter(
            name="content",
            type="string",
            description="The new markdown content.",
        ),
    ]

    async def execute(self, args: UpdateNoteArgs) -> ToolResult:
        try:
            await asyncio.to_thread(self._store.update, args.id, args.content)
        except NoteNotFound as e:
            return ToolResult(success=False, output="", error=f"Failed to update card: {e}")
        return ToolResult(
            success=True, output=f"Note {args.id} updated successfully.", mutated=True,
        )


class DeleteNoteTool(_NoteTool):
    name = "delete_note"
    description = "Delete a note card permanently."
    mutates = True
    args_model = DeleteNoteArgs
    parameters = [
        ToolParameter(
            name="id",
            type="string",
            description="The UUID of the note to delete.",
        ),
    ]

    async def execute(self, args: DeleteNoteArgs) -> ToolResult:
        try:
            await asyncio.to_thread(self._store.delete, args.id)
        except NoteNotFound as e:
            return ToolResult(success=False, output="", error=f"Failed to delete card: {e}")
        return ToolResult(
            success=True, output=f"Note {args.id} deleted successfully.", mutated=True,
        )


class ListNotesTool(_NoteTool):
    name = "list_notes"
    description = "Get a list of all existing notes (id, content, timestamps)."
    args_model = ListNotesArgs
    parameters: list[ToolParameter] = []

    async def execute(self, args: ListNotesArgs) -> ToolResult:
        notes = await asyncio.to_thread(self._store.list)
        lines = ["Current Notes:"]
        if not notes:
            lines.append("(No notes found)")
        for note in notes:
            lines.append(f"- ID: {note.id}")
            lines.append(f"  Content (preview): {note.preview(_PREVIEW_CHARS)}...")
        return ToolResult(success=True, output="\n".join(lines))


def register_note_tools(registry: ToolRegistry, store: NoteStore) -> None:
    """Register the four note tools with *registry*."""
    for tool_cls in [CreateNoteTool, UpdateNoteTool, DeleteNoteTool, ListNotesTool]:
        registry.register(tool_cls(store))
