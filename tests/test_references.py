"""Tests for :mod:`confab.chat.references`."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from confab.ai.tools import ToolRegistry
from confab.chat.message_model import Message
from confab.chat.references import (
    ToolReferenceResolver,
    VariableReferenceResolver,
    VariableRegistry,
    builtin_variables,
)
from confab.editor.syntax.markdown import parse_document


class _Target:
    def __init__(self, **context: Any) -> None:
        self.tools: list[str] = []
        self.variables: list[str] = []
        self.context = SimpleNamespace(
            filetype=context.get("filetype", "python"),
            buffer_name=context.get("buffer_name", "main.py"),
            buffer_text=context.get("buffer_text", ""),
            selection=context.get("selection"),
        )

    def add_tool(self, name: str) -> None:
        self.tools.append(name)

    def add_variable(self, content: str) -> None:
        self.variables.append(content)


class TestToolReferences:
    def test_parse_registers_known_tools_once_in_order(self, tool_registry: ToolRegistry) -> None:
        resolver = ToolReferenceResolver(tool_registry)
        target = _Target()

        found = resolver.parse(target, Message(role="user", content="@add then @lookup and @add again"))

        assert found is True
        assert target.tools == ["add", "lookup"]

    def test_unknown_mentions_are_not_references(self, tool_registry: ToolRegistry) -> None:
        resolver = ToolReferenceResolver(tool_registry)
        target = _Target()
        text = "ping @someone or mail me@example.com"

        assert resolver.parse(target, {"content": text}) is False
        assert target.tools == []
        assert resolver.replace(text) == text

    def test_replace_strips_tokens_and_is_idempotent(self, tool_registry: ToolRegistry) -> None:
        resolver = ToolReferenceResolver(tool_registry)

        once = resolver.replace("Please @lookup  the docs @add\nthanks ")
        twice = resolver.replace(once)

        assert once == "Please the docs\nthanks"
        assert twice == once

    def test_invocations_come_from_last_assistant_section(self, tool_registry: ToolRegistry) -> None:
        resolver = ToolReferenceResolver(tool_registry, block_tag="tool")
        tree = parse_document(
            "## Me\n\n```tool\nold\n```\n\n## Assistant\n\n```tool\nfirst\n```\n\n```json\nskip\n```\n\n```tool\nsecond\n```\n"
        )

        assert [block.content for block in resolver.invocations(tree)] == ["first\n", "second\n"]


class TestVariableReferences:
    def test_parse_adds_resolved_content(self) -> None:
        registry = VariableRegistry()
        registry.register("today", lambda session: "It is Monday")
        registry.register("empty", lambda session: "")
        resolver = VariableReferenceResolver(registry)
        target = _Target()

        assert resolver.parse(target, {"content": "#today #empty #unknown"}) is True
        assert target.variables == ["It is Monday"]

    def test_failing_variable_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        registry = VariableRegistry()

        def broken(session: Any) -> str:
            raise RuntimeError("boom")

        registry.register("broken", broken)
        registry.register("ok", lambda session: "fine")
        resolver = VariableReferenceResolver(registry)
        target = _Target()

        assert resolver.parse(target, {"content": "#broken #ok"}) is True
        assert target.variables == ["fine"]
        assert "broken" in caplog.text

    def test_markdown_headings_are_not_variables(self) -> None:
        resolver = VariableReferenceResolver(builtin_variables())
        text = "# buffer\n## Heading #1 and issue#buffer"

        assert resolver.find(text) == []
        assert resolver.replace(text) == text

    def test_builtin_buffer_and_selection(self) -> None:
        resolver = VariableReferenceResolver(builtin_variables())
        target = _Target(buffer_text="x = 1", selection="x")

        resolver.parse(target, {"content": "Explain #selection in #buffer"})

        assert target.variables[0] == "Here is the selected code:\n\n```python\nx\n```"
        assert target.variables[1].startswith("Here is the content of main.py:")
        assert resolver.replace("Explain #selection in #buffer") == "Explain in"

    def test_builtins_skip_missing_context(self) -> None:
        resolver = VariableReferenceResolver(builtin_variables())
        target = _Target()

        assert resolver.parse(target, {"content": "#buffer #selection"}) is True
        assert target.variables == []

    def test_registry_basics(self) -> None:
        registry = VariableRegistry()
        registry.register("a", lambda session: "a", description="first")

        assert "a" in registry
        assert registry.names() == ["a"]
        assert registry.get("a").description == "first"
        assert [definition.name for definition in registry] == ["a"]
        assert registry.unregister("a") is True
        assert registry.get("a") is None
