"""Tests for the markdown note store."""

from __future__ import annotations

import pytest

from notestream.notes.store import NoteNotFound, NoteStore, extract_title, sanitize_filename


@pytest.fixture
def store(tmp_path) -> NoteStore:
    return NoteStore(tmp_path / "notes")


class TestTitles:
    def test_heading_wins(self):
        assert extract_title("intro\n## Groceries\n- milk") == "Groceries"

    def test_first_line_fallback(self):
        assert extract_title("\n\n  plain text  \nmore") == "plain text"

    def test_empty(self):
        assert extract_title("") == "Untitled"

    def test_sanitize(self):
        assert sanitize_filename('a/b:c?"d"') == "a-b-c'd'"
        assert sanitize_filename("...") == "Untitled"
        assert len(sanitize_filename("x" * 300)) == 100


class TestCrud:
    def test_create_and_get(self, store: NoteStore):
        note = store.create("# Shopping\n- milk")
        assert note.path.name == "Shopping.md"

        loaded = store.get(note.id)
        assert loaded.content == "# Shopping\n- milk"
        assert loaded.created_at == note.created_at

    def test_list_empty_directory(self, store: NoteStore):
        assert store.list() == []

    def test_duplicate_titles_get_suffix(self, store: NoteStore):
        a = store.create("# Todo")
        b = store.create("# Todo")
        assert a.path.name == "Todo.md"
        assert b.path.name == "Todo (2).md"
        assert len(store.list()) == 2

    def test_update_same_title_keeps_file(self, store: NoteStore):
        note = store.create("# Todo\n- a")
        updated = store.update(note.id, "# Todo\n- a\n- b")
        assert updated.path == note.path
        assert store.get(note.id).content == "# Todo\n- a\n- b"

    def test_update_new_title_renames(self, store: NoteStore):
        note = store.create("# Old")
        updated = store.update(note.id, "# New")
        assert updated.path.name == "New.md"
        assert not note.path.exists()
        assert len(store.list()) == 1

    def test_delete(self, store: NoteStore):
        note = store.create("bye")
        store.delete(note.id)
        assert store.list() == []

    def test_missing_note(self, store: NoteStore):
        with pytest.raises(NoteNotFound):
            store.get("missing")
        with pytest.raises(NoteNotFound):
            store.update("missing", "x")
        with pytest.raises(NoteNotFound):
            store.delete("missing")

    def test_files_without_front_matter_skipped(self, store: NoteStore):
        store.create("# Kept")
        (store.directory / "stray.md").write_text("# no metadata", encoding="utf-8")
        assert [n.title for n in store.list()] == ["Kept"]

    def test_preview_flattens_newlines(self, store: NoteStore):
        note = store.create("line one\nline two")
        assert note.preview(12) == "line one lin"
