"""Adapters, the OpenAI-compatible client, and request orchestration."""

from .adapters import Adapter, AdapterRegistry, BaseAdapter, ChatOutput, RequestCallbacks
from .client import AIClient, ApproxByteCounter, ClientSettings
from .openai_adapter import OpenAIAdapter, register_openai
from .schema import ComputedValue, LiteralValue, SchemaEntry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "BaseAdapter",
    "ChatOutput",
    "RequestCallbacks",
    "AIClient",
    "ApproxByteCounter",
    "ClientSettings",
    "OpenAIAdapter",
    "register_openai",
    "SchemaEntry",
    "LiteralValue",
    "ComputedValue",
]
