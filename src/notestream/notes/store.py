"""Markdown note storage.

Each note is one ``.md`` file with a YAML front-matter block::

    ---
    id: 6f0c...
    created: 1718000000
    updated: 1718000000
    ---
    # Shopping
    - milk

File names follow the note's title (first heading, else first line).
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

import yaml

from notestream.errors import NotestreamError

_logger = logging.getLogger(__name__)

_FRONT_MATTER = re.compile(r"\A---\r?\n(.*?)\r?\n---\r?\n?", re.DOTALL)
_MAX_TITLE = 100


class NoteNotFound(NotestreamError):
    code = "note_not_found"

    def __init__(self, note_id: str) -> None:
        self.note_id = note_id
        super().__init__(f"Note with id {note_id} not found")


@dataclass
class Note:
    id: str
    content: str
    created_at: int
    updated_at: int
    path: Path | None = None

    @property
    def title(self) -> str:
        return extract_title(self.content)

    def preview(self, limit: int = _MAX_TITLE) -> str:
        flat = self.content.replace("\n", " ")
        return flat[:limit]


def extract_title(content: str) -> str:
    """First ``#`` heading, else the first non-empty line, else ``Untitled``."""
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("#"):
            title = stripped.lstrip("#").strip()
            if title:
                return title
    for line in content.splitlines():
        if line.strip():
            return line.strip()
    return "Untitled"


def sanitize_filename(title: str) -> str:
    """Make *title* safe as a file name on Windows, macOS and Linux."""
    table = str.maketrans({
        "\\": "-", "/": "-", ":": "-", "*": "-", "|": "-",
        "?": None, '"': "'", "<": "(", ">": ")",
    })
    name = title.translate(table).strip().rstrip(".")
    if len(name) > _MAX_TITLE:
        name = name[:_MAX_TITLE].strip()
    return name or "Untitled"


class NoteStore:
    """CRUD over a directory of markdown notes.

    All operations are synchronous and serialised by a lock; async callers
    wrap them in ``asyncio.to_thread``.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory).expanduser()
        self._lock = threading.RLock()

    @property
    def directory(self) -> Path:
        return self._dir

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, content: str) -> Note:
        now = int(time.time())
        note = Note(id=str(uuid.uuid4()), content=content, created_at=now, updated_at=now)
        with self._lock:
            self._dir.mkdir(parents=True, exist_ok=True)
            note.path = self._unique_path(sanitize_filename(note.title))
            self._write(note)
        _logger.info("Created note %s (%s)", note.id, note.path.name)
        return note

    def list(self) -> list[Note]:
        with self._lock:
            if not self._dir.is_dir():
                return []
            notes = []
            for path in self._dir.glob("*.md"):
                note = self._read(path)
                if note is not None:
                    notes.append(note)
        notes.sort(key=lambda n: (n.created_at, n.id))
        return notes

    def get(self, note_id: str) -> Note:
        with self._lock:
            for note in self.list():
                if note.id == note_id:
                    return note
        raise NoteNotFound(note_id)

    def update(self, note_id: str, content: str) -> Note:
        with self._lock:
            note = self.get(note_id)
            old_path = note.path
            old_title = note.title
            note.content = content
            note.updated_at = int(time.time())
            if old_path is None or note.title != old_title:
                note.path = self._unique_path(sanitize_filename(note.title))
            self._write(note)
            if old_path is not None and old_path != note.path:
                old_path.unlink(missing_ok=True)
        _logger.info("Updated note %s", note_id)
        return note

    def delete(self, note_id: str) -> None:
        with self._lock:
            note = self.get(note_id)
            if note.path is not None:
                note.path.unlink(missing_ok=True)
        _logger.info("Deleted note %s", note_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _unique_path(self, base: str) -> Path:
        candidate = self._dir / f"{base}.md"
        counter = 2
        while candidate.exists():
            if counter >= 1000:
                return self._dir / f"{uuid.uuid4()}.md"
            candidate = self._dir / f"{base} ({counter}).md"
            counter += 1
        return candidate

    def _write(self, note: Note) -> None:
        assert note.path is not None
        meta = yaml.safe_dump(
            {"id": note.id, "created": note.created_at, "updated": note.updated_at},
            sort_keys=False,
        )
        note.path.write_text(f"---\n{meta}---\n{note.content}", encoding="utf-8")

    def _read(self, path: Path) -> Note | None:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            _logger.warning("Cannot read note %s: %s", path, e)
            return None
        match = _FRONT_MATTER.match(text)
        if match is None:
            _logger.debug("Skipping %s: no front matter", path.name)
            return None
        try:
            meta = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as e:
            _logger.warning("Bad front matter in %s: %s", path.name, e)
            return None
        if not isinstance(meta, dict) or "id" not in meta:
            return None
        return Note(
            id=str(meta["id"]),
            content=text[match.end():],
            created_at=int(meta.get("created", 0)),
            updated_at=int(meta.get("updated", 0)),
            path=path,
        )
