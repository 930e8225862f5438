"""Registry of open chat sessions and the most recently active one."""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:  # pragma: no cover - import only for typing
    from .session import ChatSession

LOGGER = logging.getLogger(__name__)

BLANK_DESCRIPTION = "[No messages]"


@dataclass(slots=True)
class SessionEntry:
    name: str
    description: str
    session: "ChatSession"

    @property
    def document_id(self) -> str:
        return self.session.document_id


class SessionRegistry:
    """Looks sessions up by document id. Holds no ownership over them.

    The most recent session is held weakly, so a session dropped by its host
    without being closed does not linger here as "most recent".
    """

    def __init__(self) -> None:
        self._entries: list[SessionEntry] = []
        self._most_recent: weakref.ReferenceType["ChatSession"] | None = None

    def register(self, session: "ChatSession") -> SessionEntry:
        existing = self._find_entry(session.document_id)
        if existing is not None:
            return existing
        entry = SessionEntry(
            name=f"Chat {len(self._entries) + 1}",
            description=BLANK_DESCRIPTION,
            session=session,
        )
        self._entries.append(entry)
        self.mark_active(session)
        LOGGER.debug("Registered %s (%s)", entry.name, session.document_id)
        return entry

    def unregister(self, session: "ChatSession") -> bool:
        if self.most_recent() is session:
            self._most_recent = None
        entry = self._find_entry(session.document_id)
        if entry is None:
            return False
        self._entries.remove(entry)
        LOGGER.debug("Unregistered %s (%s)", entry.name, session.document_id)
        return True

    def find_by_document(self, document_id: str) -> "ChatSession":
        """Return the session editing ``document_id``.

        Raises:
            KeyError: No open session owns that document.
        """

        entry = self._find_entry(document_id)
        if entry is None:
            raise KeyError(document_id)
        return entry.session

    def get(self, document_id: str) -> "ChatSession | None":
        entry = self._find_entry(document_id)
        return entry.session if entry is not None else None

    def most_recent(self) -> "ChatSession | None":
        if self._most_recent is None:
            return None
        session = self._most_recent()
        if session is None or session.closed:
            self._most_recent = None
            return None
        return session

    def mark_active(self, session: "ChatSession") -> None:
        if self._find_entry(session.document_id) is None:
            LOGGER.debug("Ignoring focus for unregistered session %s", session.document_id)
            return
        self._most_recent = weakref.ref(session)

    def set_description(self, session: "ChatSession", description: str) -> None:
        entry = self._find_entry(session.document_id)
        if entry is None:
            raise KeyError(session.document_id)
        entry.description = description or BLANK_DESCRIPTION

    def entries(self) -> list[SessionEntry]:
        return list(self._entries)

    def sessions(self) -> list["ChatSession"]:
        return [entry.session for entry in self._entries]

    def _find_entry(self, document_id: str) -> SessionEntry | None:
        for entry in self._entries:
            if entry.document_id == document_id:
                return entry
        return None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator["ChatSession"]:
        return iter(self.sessions())

    def __contains__(self, session: object) -> bool:
        return any(entry.session is session for entry in self._entries)
