"""Registry of tools a chat can make available to the model.

A tool is referenced from user text as ``@name``. Adding it to a chat puts its
usage instructions into the transcript as a hidden system message; the model
then invokes it by emitting a fenced payload block that the executor runs.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Iterator, Mapping

__all__ = [
    "ToolDefinition",
    "ToolRegistry",
    "ToolHandler",
    "AsyncToolHandler",
    "DuplicateToolError",
    "ToolNotFoundError",
]

LOGGER = logging.getLogger(__name__)

ToolHandler = Callable[[Mapping[str, Any]], Any]
AsyncToolHandler = Callable[[Mapping[str, Any]], Coroutine[Any, Any, Any]]
SystemPromptFactory = Callable[["ToolDefinition"], str]


class DuplicateToolError(Exception):
    """Raised when a tool name is registered twice."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolNotFoundError(Exception):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found")


def default_tool_prompt(tool: "ToolDefinition") -> str:
    schema = json.dumps(tool.parameters or {"type": "object", "properties": {}}, indent=2)
    return (
        f"## {tool.name}\n"
        f"{tool.description}\n\n"
        f"Call it with a payload whose `name` is `{tool.name}` and whose `arguments` match:\n"
        f"```json\n{schema}\n```"
    )


@dataclass(slots=True)
class ToolDefinition:
    """A tool the model may call.

    Attributes:
        name: Identifier used in ``@name`` references and payload blocks.
        description: What the tool does, shown to the model.
        parameters: JSON Schema the payload ``arguments`` must satisfy.
        handler: Sync or async callable receiving the validated arguments.
        system_prompt: Literal usage instructions, or a factory receiving the definition.
    """

    name: str
    description: str
    handler: ToolHandler | AsyncToolHandler
    parameters: Mapping[str, Any] = field(default_factory=dict)
    system_prompt: str | SystemPromptFactory = default_tool_prompt

    def render_system_prompt(self) -> str:
        prompt = self.system_prompt
        return prompt(self) if callable(prompt) else prompt

    @property
    def is_async(self) -> bool:
        return asyncio.iscoroutinefunction(self.handler)

    async def run(self, arguments: Mapping[str, Any]) -> Any:
        if self.is_async:
            return await self.handler(arguments)  # type: ignore[misc]
        return self.handler(arguments)


class ToolRegistry:
    """Name -> :class:`ToolDefinition` mapping shared by the sessions of a host."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition, *, allow_override: bool = False) -> ToolDefinition:
        if tool.name in self._tools and not allow_override:
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool
        LOGGER.debug("Registered tool: %s", tool.name)
        return tool

    def register_function(
        self,
        name: str,
        handler: ToolHandler | AsyncToolHandler,
        *,
        description: str = "",
        parameters: Mapping[str, Any] | None = None,
        allow_override: bool = False,
    ) -> ToolDefinition:
        """Register a plain function as a tool."""

        tool = ToolDefinition(
            name=name,
            description=description or (handler.__doc__ or "").strip(),
            handler=handler,
            parameters=dict(parameters or {}),
        )
        return self.register(tool, allow_override=allow_override)

    def unregister(self, name: str) -> bool:
        if self._tools.pop(name, None) is None:
            return False
        LOGGER.debug("Unregistered tool: %s", name)
        return True

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_required(self, name: str) -> ToolDefinition:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def names(self) -> list[str]:
        return list(self._tools)

    def clear(self) -> None:
        self._tools.clear()

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(list(self._tools.values()))
