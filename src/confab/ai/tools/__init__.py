"""Tools the model can call from a chat.

Example:
    from confab.ai.tools import JsonToolExecutor, ToolRegistry

    registry = ToolRegistry()
    registry.register_function(
        "greet",
        lambda args: f"Hello, {args.get('name', 'World')}!",
        description="Greet someone",
        parameters={"type": "object", "properties": {"name": {"type": "string"}}},
    )
    executor = JsonToolExecutor(registry)
"""

from .registry import (
    AsyncToolHandler,
    DuplicateToolError,
    ToolDefinition,
    ToolHandler,
    ToolNotFoundError,
    ToolRegistry,
)

from .executor import (
    JsonToolExecutor,
    ToolCall,
    ToolExecutor,
)

__all__ = [
    # registry.py
    "ToolDefinition",
    "ToolRegistry",
    "ToolHandler",
    "AsyncToolHandler",
    "DuplicateToolError",
    "ToolNotFoundError",
    # executor.py
    "ToolCall",
    "ToolExecutor",
    "JsonToolExecutor",
]
