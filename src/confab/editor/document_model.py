"""In-memory chat document with positional edits and a read-only guard."""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from ..chat.errors import DocumentLockedError

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[["ChatDocument"], None]


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class DocumentVersion:
    """Lightweight metadata describing a document snapshot."""

    document_id: str
    version_id: int
    content_hash: str


@dataclass(slots=True)
class ChatDocument:
    """Text buffer backing one chat session.

    Positions are zero-based ``(line, column)`` pairs. An empty document has a
    single empty line, mirroring editor buffers. Structural edits are refused
    while ``readonly`` is set unless the caller passes ``force=True``; the
    session uses ``force`` for its own streaming writes.
    """

    text: str = ""
    name: str = ""
    filetype: str = "confab"
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    readonly: bool = False
    modified: bool = False
    version_id: int = 1
    content_hash: str = field(default_factory=str)
    updated_at: datetime = field(default_factory=_utcnow)
    _listeners: list[ChangeListener] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = _hash_text(self.text)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")

    @property
    def line_count(self) -> int:
        return self.text.count("\n") + 1

    def line(self, index: int) -> str:
        lines = self.lines
        if index < 0:
            index += len(lines)
        if not 0 <= index < len(lines):
            raise IndexError(f"line {index} out of range")
        return lines[index]

    def last_position(self) -> tuple[int, int, int]:
        """Return ``(last_line, last_column, line_count)`` for the document end."""

        lines = self.lines
        last_line = len(lines) - 1
        return last_line, len(lines[-1]), len(lines)

    def offset_of(self, line: int, col: int) -> int:
        """Translate a ``(line, col)`` position into an absolute text offset."""

        lines = self.lines
        if not 0 <= line < len(lines):
            raise IndexError(f"line {line} out of range")
        col = max(0, min(col, len(lines[line])))
        return sum(len(item) + 1 for item in lines[:line]) + col

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def set_text(self, new_text: str, *, force: bool = False) -> None:
        """Replace the whole document."""

        self._guard(force)
        self._commit(new_text)

    def insert_text(self, line: int, col: int, text: str, *, force: bool = False) -> None:
        """Insert ``text`` at ``(line, col)``; newlines in ``text`` open new lines."""

        self._guard(force)
        offset = self.offset_of(line, col)
        self._commit(self.text[:offset] + text + self.text[offset:])

    def append(self, text: str, *, force: bool = False) -> None:
        """Insert ``text`` at the end of the last line."""

        self._guard(force)
        if text:
            self._commit(self.text + text)

    def set_readonly(self, readonly: bool) -> None:
        self.readonly = readonly
        self.modified = False

    def is_readonly(self) -> bool:
        return self.readonly

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def version_info(self) -> DocumentVersion:
        return DocumentVersion(
            document_id=self.document_id,
            version_id=self.version_id,
            content_hash=self.content_hash,
        )

    def snapshot(self) -> Dict[str, Any]:
        """Return a serializable snapshot of the document."""

        return {
            "document_id": self.document_id,
            "name": self.name,
            "text": self.text,
            "readonly": self.readonly,
            "version_id": self.version_id,
            "content_hash": self.content_hash,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _guard(self, force: bool) -> None:
        if self.readonly and not force:
            raise DocumentLockedError(self.document_id)

    def _commit(self, new_text: str) -> None:
        self.text = new_text
        self.modified = True
        self.updated_at = _utcnow()
        self.version_id += 1
        self.content_hash = _hash_text(new_text)
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                LOGGER.debug("Document listener failed", exc_info=True)
