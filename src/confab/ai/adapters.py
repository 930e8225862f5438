"""Adapter contract consumed by chat sessions, plus a name-based registry.

An adapter owns everything provider-specific: its settings schema, how
settings become request parameters, how chat roles are named on the wire, and
the streaming request itself. Sessions only talk to the protocol below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Protocol, Sequence, runtime_checkable

from .schema import Schema, SchemaEntry, get_default, get_ordered_keys, resolve_value

__all__ = [
    "STATUS_SUCCESS",
    "STATUS_ERROR",
    "ChatOutput",
    "AdapterFeatures",
    "AdapterHandlers",
    "RequestCallbacks",
    "RequestHandle",
    "Adapter",
    "BaseAdapter",
    "AdapterRegistry",
    "DuplicateAdapterError",
]

LOGGER = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(slots=True)
class ChatOutput:
    """Canonical shape of one streamed delivery after the adapter decoded it."""

    status: str
    content: str = ""
    role: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS


@dataclass(slots=True)
class AdapterFeatures:
    tokens: bool = False
    stream: bool = True


ChatOutputHandler = Callable[[Any, Any], "ChatOutput | None"]
TokensHandler = Callable[[Any, Any], Any]


@dataclass(slots=True)
class AdapterHandlers:
    chat_output: ChatOutputHandler
    tokens: TokensHandler | None = None


@dataclass(slots=True)
class RequestCallbacks:
    """Callbacks handed to :meth:`Adapter.request`.

    ``callback(err, delivery)`` is called for every delivery (``err`` set on
    failure) and ``done()`` once the stream has ended. Both may be invoked
    from any thread.
    """

    callback: Callable[[Any, Any], None]
    done: Callable[[], None]


@runtime_checkable
class RequestHandle(Protocol):
    def shutdown(self) -> None:
        ...


@runtime_checkable
class Adapter(Protocol):
    name: str
    schema: Schema
    features: AdapterFeatures
    handlers: AdapterHandlers

    def get_default_settings(self) -> Dict[str, Any]:
        ...

    def map_schema_to_params(self, settings: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    def map_roles(self, messages: Sequence[Mapping[str, Any]]) -> list[Dict[str, Any]]:
        ...

    def request(
        self,
        transcript: Sequence[Mapping[str, Any]],
        callbacks: RequestCallbacks,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> RequestHandle:
        ...


def default_chat_output(adapter: Any, delivery: Any) -> ChatOutput | None:
    """Decode mapping deliveries of the form ``{"role"?, "content"}``."""

    if delivery is None:
        return None
    if isinstance(delivery, ChatOutput):
        return delivery
    if isinstance(delivery, str):
        return ChatOutput(status=STATUS_SUCCESS, content=delivery)
    if isinstance(delivery, Mapping):
        if delivery.get("error"):
            return ChatOutput(status=STATUS_ERROR, content=str(delivery["error"]))
        return ChatOutput(
            status=STATUS_SUCCESS,
            content=str(delivery.get("content") or ""),
            role=_internal_role(adapter, delivery.get("role")),
        )
    return None


def _internal_role(adapter: Any, role: Any) -> str | None:
    """Map a provider role name (``assistant``) back to the session's (``llm``)."""

    if not role:
        return None
    role_map = getattr(adapter, "role_map", None) or {}
    for internal, provider in role_map.items():
        if provider == role:
            return internal
    return str(role)


def default_tokens(adapter: Any, delivery: Any) -> Any:
    if isinstance(delivery, Mapping):
        return delivery.get("usage")
    return getattr(delivery, "usage", None)


class BaseAdapter:
    """Reusable adapter behaviour; subclasses implement :meth:`request`."""

    name = "base"
    role_map: Mapping[str, str] = {"system": "system", "user": "user", "llm": "assistant"}

    def __init__(
        self,
        schema: Mapping[str, SchemaEntry] | None = None,
        *,
        features: AdapterFeatures | None = None,
        handlers: AdapterHandlers | None = None,
    ) -> None:
        self.schema: Dict[str, SchemaEntry] = dict(schema or {})
        self.features = features or AdapterFeatures()
        self.handlers = handlers or AdapterHandlers(chat_output=default_chat_output, tokens=default_tokens)

    @property
    def model(self) -> Any:
        entry = self.schema.get("model")
        return entry.resolve_default(self) if entry else None

    def set_model(self, model: str) -> None:
        entry = self.schema.get("model")
        if entry is None:
            self.schema["model"] = SchemaEntry(type="string", default=model, order=1)
        else:
            entry.default = model

    def get_default_settings(self) -> Dict[str, Any]:
        return {key: resolve_value(value, self) for key, value in get_default(self.schema).items()}

    def map_schema_to_params(self, settings: Mapping[str, Any]) -> Dict[str, Any]:
        """Resolve each schema key from ``settings`` (or its default) into provider params.

        Keys outside the schema are dropped and ``None`` values are omitted.
        """

        params: Dict[str, Any] = {}
        for key in get_ordered_keys(self.schema):
            entry = self.schema[key]
            raw = settings[key] if key in settings else entry.default
            value = resolve_value(raw, self)
            if value is None:
                continue
            params[entry.mapping or key] = value
        return params

    def map_roles(self, messages: Sequence[Mapping[str, Any]]) -> list[Dict[str, Any]]:
        mapped: list[Dict[str, Any]] = []
        for message in messages:
            role = str(message.get("role", "user"))
            mapped.append({"role": self.role_map.get(role, role), "content": message.get("content", "")})
        return mapped

    def request(
        self,
        transcript: Sequence[Mapping[str, Any]],
        callbacks: RequestCallbacks,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> RequestHandle:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class DuplicateAdapterError(Exception):
    """Raised when an adapter name is registered twice."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Adapter '{name}' is already registered")


AdapterFactory = Callable[[], Adapter]


@dataclass(slots=True)
class AdapterRegistry:
    """Maps adapter names to factories and resolves session adapter specs."""

    default: str | None = None
    _factories: Dict[str, AdapterFactory] = field(default_factory=dict)

    def register(self, name: str, factory: AdapterFactory, *, allow_override: bool = False) -> None:
        key = name.strip().lower()
        if not key:
            raise ValueError("Adapter name is required")
        if key in self._factories and not allow_override:
            raise DuplicateAdapterError(key)
        self._factories[key] = factory
        LOGGER.debug("Registered adapter factory: %s", key)

    def unregister(self, name: str) -> bool:
        return self._factories.pop(name.strip().lower(), None) is not None

    def names(self) -> list[str]:
        return sorted(self._factories)

    def resolve(self, spec: Any = None) -> Adapter | None:
        """Return an adapter for ``spec``.

        ``spec`` may be an adapter instance (returned as is), an adapter name,
        or ``None`` for the registry default. Unknown names and failing
        factories yield ``None``.
        """

        if spec is not None and not isinstance(spec, str):
            return spec if isinstance(spec, Adapter) else None
        name = (spec or self.default or "").strip().lower()
        factory = self._factories.get(name)
        if factory is None:
            LOGGER.debug("No adapter factory registered for %r", name)
            return None
        try:
            return factory()
        except Exception:
            LOGGER.exception("Adapter factory %s failed", name)
            return None
