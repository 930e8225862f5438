"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from confab.ai.tools import ToolRegistry
from confab.ui.events import EventBus

from tests.helpers import FakeAdapter


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_function(
        "lookup",
        lambda args: f"found {args.get('query', '')}",
        description="Look something up",
        parameters={"type": "object", "properties": {"query": {"type": "string"}}},
    )
    registry.register_function(
        "add",
        lambda args: args["a"] + args["b"],
        description="Add two numbers",
        parameters={
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
            "required": ["a", "b"],
        },
    )
    return registry
