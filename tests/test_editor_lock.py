"""Tests for :mod:`confab.editor.lock`."""

from __future__ import annotations

from confab.editor.document_model import ChatDocument
from confab.editor.lock import DocumentLock, LockReason, LockState


def _lock():
    document = ChatDocument(text="## Me\n\n")
    transitions: list[tuple[LockState, LockReason | None]] = []
    lock = DocumentLock(document, on_state_change=lambda state, reason: transitions.append((state, reason)))
    return document, lock, transitions


def test_acquire_makes_document_readonly() -> None:
    document, lock, transitions = _lock()

    session = lock.acquire(LockReason.REQUEST, metadata={"cycle": 1})

    assert session is not None
    assert session.metadata == {"cycle": 1}
    assert lock.is_locked
    assert lock.active_session is session
    assert document.is_readonly()
    assert transitions == [(LockState.LOCKED, LockReason.REQUEST)]


def test_second_acquire_is_refused() -> None:
    _, lock, _ = _lock()
    lock.acquire()

    assert lock.acquire(LockReason.TOOL_RUN) is None


def test_release_restores_previous_state() -> None:
    document, lock, transitions = _lock()
    session = lock.acquire()

    assert lock.release(session.session_id) is True

    assert lock.state is LockState.UNLOCKED
    assert not document.is_readonly()
    assert transitions[-1] == (LockState.UNLOCKED, None)
    assert lock.release() is False


def test_release_with_wrong_session_is_ignored() -> None:
    document, lock, _ = _lock()
    lock.acquire()

    assert lock.release("lock-999") is False
    assert document.is_readonly()


def test_document_readonly_before_lock_stays_readonly() -> None:
    document, lock, _ = _lock()
    document.set_readonly(True)

    session = lock.acquire()
    lock.release(session.session_id)

    assert document.is_readonly()


def test_claim_takes_over_from_current_holder() -> None:
    document, lock, transitions = _lock()
    tool_run = lock.acquire(LockReason.TOOL_RUN)

    request = lock.claim(LockReason.REQUEST, metadata={"cycle": 2})

    assert request.session_id != tool_run.session_id
    assert lock.active_session is request
    assert lock.release(tool_run.session_id) is False
    assert document.is_readonly()
    assert transitions == [(LockState.LOCKED, LockReason.TOOL_RUN)]

    assert lock.release(request.session_id) is True
    assert not document.is_readonly()


def test_claim_on_unlocked_document_acquires() -> None:
    document, lock, _ = _lock()

    session = lock.claim(LockReason.REQUEST)

    assert lock.active_session is session
    assert document.is_readonly()
