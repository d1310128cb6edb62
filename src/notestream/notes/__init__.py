"""Note storage for notestream."""

from notestream.notes.store import Note, NoteNotFound, NoteStore

__all__ = ["Note", "NoteNotFound", "NoteStore"]
