"""Tests for :mod:`confab.editor.syntax.markdown`."""

from __future__ import annotations

from confab.editor.syntax.markdown import ChatDocumentParser, Span, parse_document, split_settings
from confab.services.settings import RoleLabels


def _parse(text: str, **kwargs):
    return ChatDocumentParser(**kwargs).parse(text)


def test_sections_are_split_on_role_headings() -> None:
    tree = _parse("## Me\n\nHello\n\n## Assistant\n\nHi there\n")

    assert [section.role for section in tree.sections] == ["user", "llm"]
    assert tree.sections[0].content == "Hello"
    assert tree.sections[1].content == "Hi there"
    assert tree.sections[0].heading_line == 0
    assert tree.sections[1].heading_line == 4
    assert tree.last_message() == "Hi there"


def test_trailing_user_content_only_for_final_user_section() -> None:
    pending = _parse("## Me\n\nHello\n\n## Assistant\n\nHi\n\n## Me\n\nFollow up")
    answered = _parse("## Me\n\nHello\n\n## Assistant\n\nHi")
    blank = _parse("## Me\n\n")

    assert pending.trailing_user_content() == "Follow up"
    assert answered.trailing_user_content() is None
    assert blank.trailing_user_content() is None
    assert blank.last_message() is None


def test_headings_inside_fences_are_content() -> None:
    text = "## Me\n\nExample:\n\n```markdown\n## Assistant\nnot a heading\n```\n"

    tree = _parse(text)

    assert [section.role for section in tree.sections] == ["user"]
    assert "## Assistant" in tree.sections[0].content
    assert len(tree.blocks) == 1
    assert tree.blocks[0].tag == "markdown"


def test_other_headings_are_content() -> None:
    tree = _parse("## Me\n\n# Title\n\n### Me\n\n## Notes\n\ntext")

    assert len(tree.sections) == 1
    assert tree.sections[0].content.startswith("# Title")


def test_custom_labels_and_separator() -> None:
    parser = ChatDocumentParser(RoleLabels(user="You", llm="Bot"), separator="─")

    assert parser.format_header("llm", with_separator=True) == "## Bot ─"
    assert parser.format_header("user") == "## You"

    tree = parser.parse("## You ─\n\nping\n\n## Bot ─\n\npong")
    assert [(section.role, section.content) for section in tree.sections] == [("user", "ping"), ("llm", "pong")]


def test_settings_block_is_split_from_body() -> None:
    text = "---\nmodel: gpt\ntemperature: 1\n---\n\n## Me\n\nHello"

    tree = _parse(text)

    assert tree.settings is not None
    assert tree.settings.text == "model: gpt\ntemperature: 1"
    assert tree.settings.first_line == 1
    assert tree.settings.closing_line == 3
    assert tree.sections[0].heading_line == 5
    assert tree.trailing_user_content() == "Hello"


def test_unterminated_settings_block_is_body() -> None:
    block, start = split_settings(["---", "model: gpt", "## Me"])

    assert block is None
    assert start == 0


def test_fenced_blocks_are_attached_to_sections() -> None:
    text = (
        "## Me\n\n```python\nprint(1)\n```\n\n"
        "## Assistant\n\nCalling:\n\n```json\n{\"name\": \"a\"}\n```\n\n```json extra\n{\"name\": \"b\"}\n```\n"
    )

    tree = _parse(text)
    llm = tree.last_section("llm")

    assert [block.tag for block in tree.blocks] == ["python", "json", "json"]
    assert [block.section_index for block in tree.blocks] == [0, 1, 1]
    assert [block.content for block in tree.tool_blocks("json")] == ['{"name": "a"}\n', '{"name": "b"}\n']
    assert tree.find_blocks(section=llm, tag="python") == []
    assert tree.blocks[2].info == "json extra"


def test_tool_blocks_without_assistant_section() -> None:
    tree = _parse("## Me\n\n```json\n{}\n```")

    assert tree.tool_blocks("json") == []


def test_find_codeblock_prefers_cursor_then_last() -> None:
    text = "## Me\n\n```a\none\n```\n\n```b\ntwo\n```\n"
    tree = _parse(text)

    assert tree.find_codeblock((3, 1)).tag == "a"
    assert tree.find_codeblock((0, 0)).tag == "b"
    assert tree.find_codeblock().tag == "b"


def test_section_at_and_sections_for() -> None:
    tree = _parse("## Me\n\nq1\n\n## Assistant\n\na1\n\n## Me\n\nq2")

    assert tree.section_at(2).content == "q1"
    assert tree.section_at(6).role == "llm"
    assert len(tree.sections_for("user")) == 2


def test_span_contains() -> None:
    span = Span(2, 3, 4, 1)

    assert span.contains(3)
    assert span.contains(2, 3)
    assert not span.contains(2, 2)
    assert not span.contains(4, 2)
    assert not span.contains(5)


def test_empty_text_has_no_sections() -> None:
    tree = parse_document("")

    assert tree.sections == []
    assert tree.last_message() is None
    assert tree.trailing_user_content() is None
