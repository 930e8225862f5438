"""Tests for :mod:`confab.editor.document_model`."""

from __future__ import annotations

import pytest

from confab.chat.errors import DocumentLockedError
from confab.editor.document_model import ChatDocument


def test_empty_document_has_one_line() -> None:
    document = ChatDocument()

    assert document.lines == [""]
    assert document.line_count == 1
    assert document.last_position() == (0, 0, 1)


def test_insert_text_at_position() -> None:
    document = ChatDocument(text="## Me\n\nHello")

    document.insert_text(2, 5, " world\nagain")

    assert document.text == "## Me\n\nHello world\nagain"
    assert document.last_position() == (3, 5, 4)


def test_append_and_line_access() -> None:
    document = ChatDocument(text="a\nb")

    document.append("c")

    assert document.line(1) == "bc"
    assert document.line(-1) == "bc"
    with pytest.raises(IndexError):
        document.line(5)


def test_offset_of_clamps_column() -> None:
    document = ChatDocument(text="abc\nde")

    assert document.offset_of(1, 0) == 4
    assert document.offset_of(1, 99) == 6
    with pytest.raises(IndexError):
        document.offset_of(2, 0)


def test_readonly_blocks_edits_unless_forced() -> None:
    document = ChatDocument(text="locked")
    document.set_readonly(True)

    with pytest.raises(DocumentLockedError):
        document.set_text("edit")
    with pytest.raises(DocumentLockedError):
        document.insert_text(0, 0, "x")
    with pytest.raises(DocumentLockedError):
        document.append("x")

    document.append("!", force=True)
    assert document.text == "locked!"


def test_commits_bump_version_and_notify_listeners() -> None:
    document = ChatDocument(text="v1")
    seen: list[str] = []
    document.add_listener(lambda doc: seen.append(doc.text))
    before = document.version_info()

    document.set_text("v2")

    after = document.version_info()
    assert after.version_id == before.version_id + 1
    assert after.content_hash != before.content_hash
    assert seen == ["v2"]
    assert document.snapshot()["text"] == "v2"


def test_failing_listener_does_not_block_commit() -> None:
    document = ChatDocument()

    def broken(doc: ChatDocument) -> None:
        raise RuntimeError("listener failure")

    document.add_listener(broken)
    document.set_text("still written")
    document.remove_listener(broken)

    assert document.text == "still written"
