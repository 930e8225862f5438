"""Execution of fenced tool payload blocks emitted by the model."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import jsonschema

from ...chat.errors import ToolExecutionError
from .registry import ToolRegistry

__all__ = ["ToolCall", "ToolExecutor", "JsonToolExecutor"]

LOGGER = logging.getLogger(__name__)


class ToolExecutor(Protocol):
    """Runs one tool payload on behalf of a chat session."""

    async def execute(self, payload: str, session: Any) -> Any:
        ...


@dataclass(slots=True, frozen=True)
class ToolCall:
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)
    raw: str = ""


class JsonToolExecutor:
    """Executes payloads of the form ``{"name": ..., "arguments": {...}}``.

    Arguments are validated against the tool's JSON Schema before the handler
    runs. The handler result is appended to the session as a hidden user
    message tagged ``result_tag`` so the next request carries it.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        timeout: float | None = 30.0,
        result_tag: str = "tool",
        log_arguments: bool = False,
    ) -> None:
        self._registry = registry
        self._timeout = timeout
        self._result_tag = result_tag
        self._log_arguments = log_arguments

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def parse(self, payload: str) -> ToolCall:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ToolExecutionError(f"Tool payload is not valid JSON: {exc.msg}", cause=exc) from exc
        if not isinstance(data, Mapping) or not isinstance(data.get("name"), str):
            raise ToolExecutionError("Tool payload must be an object with a string 'name'")
        arguments = data.get("arguments") or {}
        if not isinstance(arguments, Mapping):
            raise ToolExecutionError("Tool 'arguments' must be an object", tool_name=data["name"])
        return ToolCall(name=data["name"], arguments=dict(arguments), raw=payload)

    async def execute(self, payload: str, session: Any) -> Any:
        call = self.parse(payload)
        tool = self._registry.get(call.name)
        if tool is None:
            raise ToolExecutionError(f"Tool '{call.name}' is not registered", tool_name=call.name)
        if tool.parameters:
            try:
                jsonschema.validate(dict(call.arguments), dict(tool.parameters))
            except jsonschema.ValidationError as exc:
                raise ToolExecutionError(
                    f"Invalid arguments for '{call.name}': {exc.message}",
                    tool_name=call.name,
                    cause=exc,
                ) from exc

        if self._log_arguments:
            LOGGER.debug("Executing tool %s with arguments: %s", call.name, call.arguments)
        else:
            LOGGER.debug("Executing tool %s", call.name)
        start = time.perf_counter()
        try:
            if self._timeout is not None and self._timeout > 0:
                result = await asyncio.wait_for(tool.run(call.arguments), timeout=self._timeout)
            else:
                result = await tool.run(call.arguments)
        except asyncio.TimeoutError as exc:
            raise ToolExecutionError(
                f"Tool '{call.name}' timed out after {self._timeout}s",
                tool_name=call.name,
                cause=exc,
            ) from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Tool %s failed: %s", call.name, exc)
            raise ToolExecutionError(str(exc) or type(exc).__name__, tool_name=call.name, cause=exc) from exc
        LOGGER.debug("Tool %s completed in %.1fms", call.name, (time.perf_counter() - start) * 1000)

        session.add_message(
            {"role": "user", "content": self.format_result(call, result)},
            visible=False,
            tag=self._result_tag,
        )
        return result

    @staticmethod
    def format_result(call: ToolCall, result: Any) -> str:
        if isinstance(result, str):
            body = result
        else:
            body = "```json\n" + json.dumps(result, ensure_ascii=False, indent=2, default=str) + "\n```"
        return f"Result of the `{call.name}` tool:\n{body}"
