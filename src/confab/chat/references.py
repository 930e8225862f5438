"""Tool (``@name``) and variable (``#name``) references inside user messages.

Both resolvers share one shape: :meth:`parse` applies the references it finds
to the session and reports whether there were any, and :meth:`replace` strips
the reference tokens from the text. Only names known to the backing registry
count as references, so ordinary ``@mentions`` and ``#tags`` are left alone.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Protocol

from ..ai.tools.registry import ToolRegistry
from ..editor.syntax.markdown import ChatParseTree, FencedBlock

LOGGER = logging.getLogger(__name__)

_NAME = r"([A-Za-z_][\w-]*)"
_SPACES = re.compile(r"[ \t]{2,}")


class ReferenceTarget(Protocol):
    """The parts of a chat session the resolvers act on."""

    def add_tool(self, name: str) -> Any:
        ...

    def add_variable(self, content: str) -> Any:
        ...


def _content_of(message: Any) -> str:
    if isinstance(message, Mapping):
        return str(message.get("content") or "")
    return str(getattr(message, "content", "") or "")


class _TokenResolver:
    prefix = ""

    def __init__(self) -> None:
        self._pattern = re.compile(rf"(?<![\w{re.escape(self.prefix)}]){re.escape(self.prefix)}{_NAME}")

    def known(self, name: str) -> bool:
        raise NotImplementedError

    def find(self, text: str) -> list[str]:
        """Known names referenced in ``text``, first occurrence order, no repeats."""

        found: list[str] = []
        for match in self._pattern.finditer(text or ""):
            name = match.group(1)
            if self.known(name) and name not in found:
                found.append(name)
        return found

    def replace(self, text: str) -> str:
        def strip(match: re.Match[str]) -> str:
            return "" if self.known(match.group(1)) else match.group(0)

        replaced = self._pattern.sub(strip, text or "")
        if replaced == text:
            return text
        lines = [_SPACES.sub(" ", line).rstrip() for line in replaced.split("\n")]
        return "\n".join(lines).strip()


class ToolReferenceResolver(_TokenResolver):
    """Resolves ``@tool`` references and locates tool payload blocks."""

    prefix = "@"

    def __init__(self, registry: ToolRegistry, *, block_tag: str = "json") -> None:
        super().__init__()
        self.registry = registry
        self.block_tag = block_tag

    def known(self, name: str) -> bool:
        return name in self.registry

    def parse(self, session: ReferenceTarget, message: Any) -> bool:
        names = self.find(_content_of(message))
        for name in names:
            session.add_tool(name)
        return bool(names)

    def invocations(self, tree: ChatParseTree) -> list[FencedBlock]:
        """Tool payload blocks in the latest assistant section, in document order."""

        return tree.tool_blocks(self.block_tag)


VariableCallback = Callable[[Any], str]


@dataclass(slots=True)
class VariableDefinition:
    name: str
    description: str
    callback: VariableCallback


class VariableRegistry:
    """Name -> callable producing the text a ``#name`` reference expands to."""

    def __init__(self) -> None:
        self._variables: dict[str, VariableDefinition] = {}

    def register(self, name: str, callback: VariableCallback, *, description: str = "") -> VariableDefinition:
        definition = VariableDefinition(name=name, description=description, callback=callback)
        self._variables[name] = definition
        return definition

    def unregister(self, name: str) -> bool:
        return self._variables.pop(name, None) is not None

    def get(self, name: str) -> VariableDefinition | None:
        return self._variables.get(name)

    def names(self) -> list[str]:
        return list(self._variables)

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __iter__(self) -> Iterator[VariableDefinition]:
        return iter(list(self._variables.values()))


class VariableReferenceResolver(_TokenResolver):
    """Resolves ``#variable`` references into hidden user messages."""

    prefix = "#"

    def __init__(self, registry: VariableRegistry) -> None:
        super().__init__()
        self.registry = registry

    def known(self, name: str) -> bool:
        return name in self.registry

    def parse(self, session: ReferenceTarget, message: Any) -> bool:
        names = self.find(_content_of(message))
        for name in names:
            definition = self.registry.get(name)
            if definition is None:
                continue
            try:
                content = definition.callback(session)
            except Exception:
                LOGGER.exception("Variable #%s failed to resolve", name)
                continue
            if content:
                session.add_variable(content)
        return bool(names)


def builtin_variables() -> VariableRegistry:
    """Variables every session understands: ``#buffer`` and ``#selection``."""

    registry = VariableRegistry()
    registry.register("buffer", _buffer_variable, description="Share the source buffer with the model")
    registry.register("selection", _selection_variable, description="Share the selected text with the model")
    return registry


def _fence(label: str, filetype: str, text: str) -> str:
    return f"{label}:\n\n```{filetype}\n{text}\n```"


def _buffer_variable(session: Any) -> str:
    context = session.context
    if not context.buffer_text:
        return ""
    name = context.buffer_name or "the buffer"
    return _fence(f"Here is the content of {name}", context.filetype, context.buffer_text)


def _selection_variable(session: Any) -> str:
    context = session.context
    if not context.selection:
        return ""
    return _fence("Here is the selected code", context.filetype, context.selection)
