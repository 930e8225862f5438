"""Event bus used to surface chat lifecycle changes to the host UI.

The core never formats notifications itself. It publishes typed events and the
host (status line, diagnostics panel, notifier) subscribes to the ones it
renders.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all chat events."""


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Session lifecycle
# =============================================================================


@dataclass(slots=True)
class ChatCreated(Event):
    """Emitted once a session is registered."""

    session_id: int
    document_id: str
    name: str


@dataclass(slots=True)
class ChatAdapterChanged(Event):
    """Emitted when a session's adapter is set, swapped, or released."""

    document_id: str
    adapter: str | None


@dataclass(slots=True)
class ChatModelChanged(Event):
    """Emitted when the model used by a session changes."""

    document_id: str
    model: str | None


@dataclass(slots=True)
class ChatToolAdded(Event):
    """Emitted the first time a tool is enabled for a session."""

    document_id: str
    tool: str


@dataclass(slots=True)
class ChatClosed(Event):
    """Emitted when a session is closed and deregistered."""

    document_id: str


# =============================================================================
# Request lifecycle
# =============================================================================


@dataclass(slots=True)
class ChatRequestStarted(Event):
    """Emitted when a request is dispatched to the adapter."""

    document_id: str
    cycle: int
    message_count: int


@dataclass(slots=True)
class ChatStreamDelivery(Event):
    """Emitted for every delivery applied to the document."""

    document_id: str
    content: str


@dataclass(slots=True)
class ChatRequestFinished(Event):
    """Emitted after a request completes, fails, or is cancelled."""

    document_id: str
    cycle: int
    status: str
    error: str | None = None


# =============================================================================
# Document & diagnostics
# =============================================================================


@dataclass(slots=True)
class DocumentLockChanged(Event):
    """Emitted when the chat document toggles read-only state."""

    document_id: str
    locked: bool


@dataclass(slots=True)
class Diagnostic:
    """Position-tagged message for inline display in the chat document.

    Lines and columns are zero-based; ``end_col`` is exclusive.
    """

    line: int
    col: int
    end_line: int
    end_col: int
    message: str
    severity: str = "error"

    def to_dict(self) -> dict[str, Any]:
        return {
            "line": self.line,
            "col": self.col,
            "end_line": self.end_line,
            "end_col": self.end_col,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass(slots=True)
class SettingsDiagnostics(Event):
    """Emitted after the settings block is validated."""

    document_id: str
    namespace: str
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass(slots=True)
class NoticePosted(Event):
    """A notification-worthy message for the human operator."""

    message: str
    level: str = "info"
    document_id: str | None = None
    code: str | None = None


_QUIET_EVENT_TYPES.add(ChatStreamDelivery)


class EventBus(Generic[E]):
    """Typed publish/subscribe bus.

    Bound-method handlers are held weakly so a collected owner drops out
    automatically; plain functions and lambdas are held strongly. The bus is
    not thread-safe and is driven from the session's event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: E) -> None:
        """Invoke every handler for ``type(event)`` in registration order.

        A failing handler is logged and does not stop the remaining handlers.
        """

        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        dead: list[_HandlerRef] = []
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(handler_ref)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised for event %s", _handler_name(handler), event_type.__name__
                )
        for handler_ref in dead:
            handlers.remove(handler_ref)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> "_HandlerRef":
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "ChatCreated",
    "ChatAdapterChanged",
    "ChatModelChanged",
    "ChatToolAdded",
    "ChatClosed",
    "ChatRequestStarted",
    "ChatStreamDelivery",
    "ChatRequestFinished",
    "DocumentLockChanged",
    "Diagnostic",
    "SettingsDiagnostics",
    "NoticePosted",
]
