"""Adapter for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Mapping, Sequence

from .adapters import (
    AdapterFeatures,
    AdapterHandlers,
    AdapterRegistry,
    BaseAdapter,
    RequestCallbacks,
    default_chat_output,
)
from .client import AIClient, AIStreamEvent, ClientSettings
from .schema import SchemaEntry

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"


class TaskRequestHandle:
    """Cancellable handle around the asyncio task running one streamed request."""

    def __init__(self, task: asyncio.Task[None]) -> None:
        self.task = task

    def shutdown(self) -> None:
        if not self.task.done():
            self.task.cancel()

    @property
    def done(self) -> bool:
        return self.task.done()


def openai_tokens(adapter: Any, delivery: Any) -> int | None:
    usage = delivery.get("usage") if isinstance(delivery, Mapping) else None
    if not usage:
        return None
    total = usage.get("total_tokens")
    return int(total) if total is not None else None


class OpenAIAdapter(BaseAdapter):
    """Streams chat completions through :class:`AIClient`."""

    name = "openai"

    def __init__(self, client: AIClient, *, name: str | None = None) -> None:
        self._client = client
        self._models: list[str] = []
        super().__init__(
            self._build_schema(client.settings.model),
            features=AdapterFeatures(tokens=True, stream=True),
            handlers=AdapterHandlers(chat_output=default_chat_output, tokens=openai_tokens),
        )
        if name:
            self.name = name

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OpenAIAdapter":
        """Build an adapter from ``OPENAI_*`` and ``CONFAB_MODEL`` environment variables."""

        env = os.environ if environ is None else environ
        settings = ClientSettings(
            base_url=env.get("OPENAI_BASE_URL", DEFAULT_BASE_URL),
            api_key=env.get("OPENAI_API_KEY", ""),
            model=env.get("CONFAB_MODEL", DEFAULT_MODEL),
            organization=env.get("OPENAI_ORG_ID") or None,
        )
        return cls(AIClient(settings))

    @property
    def client(self) -> AIClient:
        return self._client

    async def refresh_models(self) -> list[str]:
        """Fetch the endpoint's model list; it becomes the ``model`` completion choices."""

        self._models = await self._client.list_models(force_refresh=True)
        return list(self._models)

    def available_models(self) -> list[str]:
        models = list(self._models)
        current = self.model
        if current and current not in models:
            models.insert(0, current)
        return models

    def request(
        self,
        transcript: Sequence[Mapping[str, Any]],
        callbacks: RequestCallbacks,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> TaskRequestHandle:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._stream(list(transcript), dict(params or {}), callbacks))
        return TaskRequestHandle(task)

    async def _stream(
        self,
        transcript: list[Mapping[str, Any]],
        params: dict[str, Any],
        callbacks: RequestCallbacks,
    ) -> None:
        first = True
        try:
            async for event in self._client.stream_chat(transcript, **params):
                delivery = self._to_delivery(event, first)
                if delivery is None:
                    continue
                if "content" in delivery:
                    first = False
                callbacks.callback(None, delivery)
        except asyncio.CancelledError:
            LOGGER.debug("OpenAI stream cancelled")
            raise
        except Exception as exc:
            LOGGER.warning("OpenAI stream failed: %s", exc)
            callbacks.callback(exc, None)
        callbacks.done()

    def _to_delivery(self, event: AIStreamEvent, first: bool) -> dict[str, Any] | None:
        if event.type == "content.delta" and event.content:
            delivery: dict[str, Any] = {"content": event.content}
            if first:
                delivery["role"] = self.role_map["llm"]
            return delivery
        if event.type == "usage" and event.usage:
            return {"usage": event.usage}
        return None

    def _build_schema(self, model: str) -> dict[str, SchemaEntry]:
        return {
            "model": SchemaEntry(
                type="enum",
                default=model,
                choices=lambda adapter: adapter.available_models(),
                desc="ID of the model to use.",
                order=1,
            ),
            "temperature": SchemaEntry(
                type="number",
                default=1.0,
                minimum=0,
                maximum=2,
                desc="Sampling temperature. Higher values make the output more random.",
                order=2,
            ),
            "top_p": SchemaEntry(
                type="number",
                default=1.0,
                minimum=0,
                maximum=1,
                desc="Nucleus sampling: only tokens in the top_p probability mass are considered.",
                order=3,
            ),
            "max_tokens": SchemaEntry(
                type="integer",
                default=None,
                optional=True,
                minimum=1,
                desc="Maximum number of tokens to generate.",
                order=4,
            ),
            "stop": SchemaEntry(
                type="list",
                default=None,
                optional=True,
                desc="Up to 4 sequences where generation stops.",
                validate=lambda value: value is None or len(value) <= 4,
                order=5,
            ),
        }


def register_openai(registry: AdapterRegistry, *, environ: Mapping[str, str] | None = None) -> None:
    registry.register("openai", lambda: OpenAIAdapter.from_env(environ), allow_override=True)
