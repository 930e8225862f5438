"""Read-only lock held on a chat document while a request or a tool job runs."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Protocol

LOGGER = logging.getLogger(__name__)


class LockState(Enum):
    UNLOCKED = auto()
    LOCKED = auto()


class LockReason(Enum):
    """Who is holding the document."""

    REQUEST = auto()
    TOOL_RUN = auto()


class LockableDocument(Protocol):
    """Anything that can be toggled read-only."""

    @property
    def document_id(self) -> str:
        ...

    def set_readonly(self, readonly: bool) -> None:
        ...

    def is_readonly(self) -> bool:
        ...


class LockStateListener(Protocol):
    def __call__(self, state: LockState, reason: LockReason | None) -> None:
        ...


@dataclass(slots=True)
class LockSession:
    """One holder of the lock."""

    session_id: str
    reason: LockReason
    metadata: dict[str, Any] = field(default_factory=dict)
    acquired_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DocumentLock:
    """Keeps a chat document read-only for one holder at a time.

    A request may :meth:`claim` the document from a running tool job. The
    document then stays locked until the new holder releases it, and the old
    holder's release is refused. The read-only flag the document had before
    the lock was first taken is restored on release, so a host that locked the
    document for its own reasons is not overridden.
    """

    def __init__(
        self,
        document: LockableDocument,
        *,
        on_state_change: LockStateListener | None = None,
    ) -> None:
        self._document = document
        self._on_state_change = on_state_change
        self._mutex = threading.RLock()
        self._holder: LockSession | None = None
        self._ids = itertools.count(1)
        self._was_readonly = False

    @property
    def state(self) -> LockState:
        with self._mutex:
            return LockState.UNLOCKED if self._holder is None else LockState.LOCKED

    @property
    def is_locked(self) -> bool:
        return self.state is LockState.LOCKED

    @property
    def active_session(self) -> LockSession | None:
        with self._mutex:
            return self._holder

    def acquire(
        self,
        reason: LockReason = LockReason.REQUEST,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> LockSession | None:
        """Lock the document. Returns ``None`` when someone already holds it."""

        with self._mutex:
            if self._holder is not None:
                LOGGER.warning(
                    "Document %s is already locked for %s",
                    self._document.document_id,
                    self._holder.reason.name,
                )
                return None
            return self._take(reason, metadata)

    def claim(
        self,
        reason: LockReason = LockReason.REQUEST,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> LockSession:
        """Lock the document, taking it over from the current holder if any."""

        with self._mutex:
            previous = self._holder
            if previous is None:
                return self._take(reason, metadata)
            self._holder = self._new_session(reason, metadata)
            LOGGER.info(
                "Document %s lock handed from %s (%s) to %s (%s)",
                self._document.document_id,
                previous.session_id,
                previous.reason.name,
                self._holder.session_id,
                reason.name,
            )
            return self._holder

    def release(self, session_id: str | None = None) -> bool:
        """Unlock the document.

        Returns ``False`` when nothing is locked or ``session_id`` is not the
        current holder.
        """

        with self._mutex:
            holder = self._holder
            if holder is None:
                return False
            if session_id is not None and holder.session_id != session_id:
                LOGGER.debug(
                    "Ignoring release of %s; document %s is held by %s",
                    session_id,
                    self._document.document_id,
                    holder.session_id,
                )
                return False
            self._holder = None
            if not self._was_readonly:
                self._document.set_readonly(False)
            LOGGER.debug("Document %s unlocked (%s)", self._document.document_id, holder.session_id)
            self._notify(LockState.UNLOCKED, None)
            return True

    def _take(self, reason: LockReason, metadata: dict[str, Any] | None) -> LockSession:
        self._holder = self._new_session(reason, metadata)
        self._was_readonly = self._document.is_readonly()
        self._document.set_readonly(True)
        LOGGER.debug(
            "Document %s locked (%s, %s)",
            self._document.document_id,
            self._holder.session_id,
            reason.name,
        )
        self._notify(LockState.LOCKED, reason)
        return self._holder

    def _new_session(self, reason: LockReason, metadata: dict[str, Any] | None) -> LockSession:
        return LockSession(session_id=f"lock-{next(self._ids)}", reason=reason, metadata=dict(metadata or {}))

    def _notify(self, state: LockState, reason: LockReason | None) -> None:
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(state, reason)
        except Exception:
            LOGGER.debug("Lock state listener failed", exc_info=True)
