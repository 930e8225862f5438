"""Markdown parsing for chat documents.

A chat document is an optional ``---`` fenced settings block followed by
role sections. Each section starts with a level-2 ATX heading naming a role
(``## Me`` or ``## Assistant ─``) and runs until the next role heading. The
body is tokenized with ``markdown-it-py`` so headings and fences are found
structurally: a ``## Me`` line inside a code fence is content, not a heading.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from ...chat.errors import ParseUnavailable
from ...services.settings import RoleLabels

try:  # pragma: no cover - dependency declared in pyproject
    from markdown_it import MarkdownIt
except Exception:  # pragma: no cover - surfaced as ParseUnavailable at parse time
    MarkdownIt = None  # type: ignore[assignment]

LOGGER = logging.getLogger(__name__)

SETTINGS_FENCE = "---"


@dataclass(slots=True, frozen=True)
class Span:
    """Zero-based line/column range; ``end_col`` is exclusive."""

    start_line: int
    start_col: int
    end_line: int
    end_col: int

    def contains(self, line: int, col: int | None = None) -> bool:
        if line < self.start_line or line > self.end_line:
            return False
        if col is None:
            return True
        if line == self.start_line and col < self.start_col:
            return False
        if line == self.end_line and col > self.end_col:
            return False
        return True


@dataclass(slots=True)
class FencedBlock:
    """A fenced code block found inside a section."""

    tag: str
    info: str
    content: str
    span: Span
    section_index: int | None = None


@dataclass(slots=True)
class Section:
    """A role section: heading plus everything up to the next role heading."""

    role: str
    label: str
    heading_line: int
    end_line: int
    raw: str
    blocks: list[FencedBlock] = field(default_factory=list)

    @property
    def content(self) -> str:
        return self.raw.strip()

    @property
    def span(self) -> Span:
        return Span(self.heading_line, 0, self.end_line, 0)

    @property
    def is_blank(self) -> bool:
        return not self.content


@dataclass(slots=True)
class SettingsBlock:
    """Raw text of the leading settings block and where it sits in the document."""

    text: str
    first_line: int
    closing_line: int


@dataclass(slots=True)
class ChatParseTree:
    """Result of parsing a chat document, exposed through narrow queries."""

    lines: list[str]
    settings: SettingsBlock | None
    sections: list[Section]
    blocks: list[FencedBlock]

    def sections_for(self, role: str) -> list[Section]:
        return [section for section in self.sections if section.role == role]

    def last_section(self, role: str | None = None) -> Section | None:
        candidates = self.sections if role is None else self.sections_for(role)
        return candidates[-1] if candidates else None

    def last_message(self) -> str | None:
        """Content after the final role heading, or ``None`` when blank."""

        section = self.last_section()
        if section is None or section.is_blank:
            return None
        return section.content

    def trailing_user_content(self) -> str | None:
        """Unsent user text: the final section's content when it is a user section."""

        section = self.last_section()
        if section is None or section.role != "user" or section.is_blank:
            return None
        return section.content

    def find_blocks(
        self,
        *,
        section: Section | None = None,
        tag: str | None = None,
    ) -> list[FencedBlock]:
        pool: Iterable[FencedBlock] = section.blocks if section is not None else self.blocks
        if tag is None:
            return list(pool)
        return [block for block in pool if block.tag == tag]

    def find_codeblock(
        self,
        cursor: tuple[int, int] | None = None,
        *,
        section: Section | None = None,
    ) -> FencedBlock | None:
        """Return the block under ``cursor``, otherwise the last block."""

        blocks = self.find_blocks(section=section)
        if cursor is not None:
            line, col = cursor
            for block in blocks:
                if block.span.contains(line, col):
                    return block
        return blocks[-1] if blocks else None

    def tool_blocks(self, tag: str, *, llm_role: str = "llm") -> list[FencedBlock]:
        """Blocks tagged ``tag`` inside the most recent assistant section, in order."""

        section = self.last_section(llm_role)
        if section is None:
            return []
        return self.find_blocks(section=section, tag=tag)

    def section_at(self, line: int) -> Section | None:
        for section in self.sections:
            if section.heading_line <= line <= section.end_line:
                return section
        return None


class ChatDocumentParser:
    """Stateless parser turning chat document text into a :class:`ChatParseTree`."""

    def __init__(self, roles: RoleLabels | None = None, *, separator: str = "") -> None:
        self._roles = roles or RoleLabels()
        self._separator = separator
        self._labels = {self._roles.user: "user", self._roles.llm: "llm"}

    @property
    def roles(self) -> RoleLabels:
        return self._roles

    def format_header(self, role: str, *, with_separator: bool = False) -> str:
        label = self._roles.label_for(role)
        if with_separator and self._separator:
            return f"## {label} {self._separator}"
        return f"## {label}"

    def parse(self, text: str) -> ChatParseTree:
        renderer = _build_parser()
        lines = (text or "").lstrip("\ufeff").split("\n")
        settings, body_start = split_settings(lines)
        body = "\n".join(lines[body_start:])
        tokens = renderer.parse(body)

        headings: list[tuple[int, str, str]] = []
        fences: list[FencedBlock] = []
        for index, token in enumerate(tokens):
            if token.map is None:
                continue
            if token.type == "heading_open" and token.tag == "h2" and token.markup == "##" and token.level == 0:
                inline = tokens[index + 1] if index + 1 < len(tokens) else None
                role_match = self._match_role(inline.content if inline is not None else "")
                if role_match is not None:
                    role, label = role_match
                    headings.append((token.map[0] + body_start, role, label))
            elif token.type == "fence":
                start = token.map[0] + body_start
                end = token.map[1] - 1 + body_start
                info = (token.info or "").strip()
                fences.append(
                    FencedBlock(
                        tag=info.split()[0] if info else "",
                        info=info,
                        content=token.content,
                        span=Span(start, 0, end, len(lines[end]) if end < len(lines) else 0),
                    )
                )

        sections = self._build_sections(lines, headings)
        for block in fences:
            for position, section in enumerate(sections):
                if section.heading_line < block.span.start_line <= section.end_line:
                    block.section_index = position
                    section.blocks.append(block)
                    break
        return ChatParseTree(lines=lines, settings=settings, sections=sections, blocks=fences)

    def _match_role(self, heading_text: str) -> tuple[str, str] | None:
        candidate = heading_text.strip()
        if self._separator:
            candidate = candidate.rstrip(self._separator + " ").strip()
        role = self._labels.get(candidate)
        if role is None:
            return None
        return role, candidate

    @staticmethod
    def _build_sections(lines: Sequence[str], headings: Sequence[tuple[int, str, str]]) -> list[Section]:
        sections: list[Section] = []
        last_line = len(lines) - 1
        for position, (heading_line, role, label) in enumerate(headings):
            if position + 1 < len(headings):
                end_line = headings[position + 1][0] - 1
            else:
                end_line = last_line
            raw = "\n".join(lines[heading_line + 1 : end_line + 1])
            sections.append(
                Section(role=role, label=label, heading_line=heading_line, end_line=end_line, raw=raw)
            )
        return sections


def split_settings(lines: Sequence[str]) -> tuple[Optional[SettingsBlock], int]:
    """Return the settings block (if fenced at the top) and the first body line."""

    if not lines or lines[0].strip() != SETTINGS_FENCE:
        return None, 0
    for index in range(1, len(lines)):
        if lines[index].strip() == SETTINGS_FENCE:
            block = SettingsBlock(text="\n".join(lines[1:index]), first_line=1, closing_line=index)
            return block, index + 1
    return None, 0


_PARSER: Optional["MarkdownIt"] = None  # type: ignore[valid-type]


def _build_parser() -> "MarkdownIt":  # type: ignore[valid-type]
    global _PARSER
    if MarkdownIt is None:
        raise ParseUnavailable("Markdown parsing requires the 'markdown-it-py' dependency.")
    if _PARSER is None:
        _PARSER = MarkdownIt("commonmark", {"html": False})
    return _PARSER


def parse_document(text: str, roles: RoleLabels | None = None, *, separator: str = "") -> ChatParseTree:
    """Parse ``text`` with a one-off :class:`ChatDocumentParser`."""

    return ChatDocumentParser(roles, separator=separator).parse(text)
