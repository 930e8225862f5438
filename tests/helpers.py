"""Shared fakes for the confab test-suite."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Iterable, Mapping, Sequence

from confab.ai.adapters import AdapterFeatures, BaseAdapter, RequestCallbacks
from confab.ai.schema import SchemaEntry
from confab.chat.session import ChatSession
from confab.services.settings import DisplaySettings, Settings
from confab.ui.events import Event, EventBus


def fake_schema() -> dict[str, SchemaEntry]:
    return {
        "model": SchemaEntry(type="string", default="fake-model", desc="Model used for the request.", order=1),
        "temperature": SchemaEntry(
            type="number",
            default=0.5,
            minimum=0,
            maximum=2,
            desc="Sampling temperature.",
            order=2,
        ),
    }


class FakeRequestHandle:
    def __init__(self) -> None:
        self.shutdown_calls = 0

    def shutdown(self) -> None:
        self.shutdown_calls += 1


class FakeAdapter(BaseAdapter):
    """Adapter whose stream is driven by hand from the test."""

    name = "fake"

    def __init__(
        self,
        *,
        name: str = "fake",
        tokens: bool = False,
        schema: Mapping[str, SchemaEntry] | None = None,
    ) -> None:
        super().__init__(schema if schema is not None else fake_schema(), features=AdapterFeatures(tokens=tokens))
        self.name = name
        self.requests: list[dict[str, Any]] = []
        self.callbacks: RequestCallbacks | None = None
        self.handle: FakeRequestHandle | None = None

    def request(
        self,
        transcript: Sequence[Mapping[str, Any]],
        callbacks: RequestCallbacks,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> FakeRequestHandle:
        self.requests.append({"transcript": [dict(item) for item in transcript], "params": dict(params or {})})
        self.callbacks = callbacks
        self.handle = FakeRequestHandle()
        return self.handle

    @property
    def last_request(self) -> dict[str, Any]:
        return self.requests[-1]

    def deliver(self, content: str, *, role: str | None = "assistant") -> None:
        delivery: dict[str, Any] = {"content": content}
        if role:
            delivery["role"] = role
        self._callbacks().callback(None, delivery)

    def deliver_usage(self, usage: Mapping[str, Any]) -> None:
        self._callbacks().callback(None, {"usage": dict(usage)})

    def fail(self, error: Any) -> None:
        self._callbacks().callback(error, None)

    def finish(self) -> None:
        self._callbacks().done()

    def _callbacks(self) -> RequestCallbacks:
        assert self.callbacks is not None, "no request has been made"
        return self.callbacks


class FailingAdapter(FakeAdapter):
    def request(self, transcript, callbacks, *, params=None):  # type: ignore[override]
        raise RuntimeError("connection refused")


class RecordingToolExecutor:
    """Tool executor that only records the payloads it is handed."""

    def __init__(self, *, fail_on: Iterable[int] = ()) -> None:
        self.payloads: list[str] = []
        self._fail_on = set(fail_on)

    async def execute(self, payload: str, session: Any) -> Any:
        index = len(self.payloads)
        self.payloads.append(payload)
        if index in self._fail_on:
            from confab.chat.errors import ToolExecutionError

            raise ToolExecutionError(f"payload {index} failed")
        return None


class EventRecorder:
    """Subscribes to event types on a bus and keeps what was published."""

    def __init__(self, bus: EventBus, *event_types: type[Event]) -> None:
        self.events: list[Event] = []
        for event_type in event_types:
            bus.subscribe(event_type, self.events.append)

    def of_type(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


def plain_settings(**display: Any) -> Settings:
    """Settings without a system prompt so store lengths only count chat messages."""

    return Settings(system_prompt="", display=DisplaySettings(**display))


def make_session(adapter: FakeAdapter | None = None, **kwargs: Any) -> ChatSession:
    kwargs.setdefault("settings", plain_settings())
    return ChatSession(adapter=adapter or FakeAdapter(), **kwargs)


def type_user_text(session: ChatSession, text: str) -> None:
    """Simulate the user typing ``text`` at the end of the chat document."""

    session.document.append(text)


async def drain(iterations: int = 5) -> None:
    """Give queued callbacks and the delivery pump a chance to run."""

    for _ in range(iterations):
        await asyncio.sleep(0)


# -----------------------------------------------------------------------------
# Fake OpenAI streaming client
# -----------------------------------------------------------------------------


@dataclass
class FakeStreamEvent:
    """Structure emulating the attributes of ``ChatCompletionStreamEvent``."""

    type: str
    delta: str | None = None
    content: str | None = None
    chunk: Any | None = None


class _FakeStream:
    def __init__(self, events: Iterable[FakeStreamEvent], *, error: Exception | None = None):
        self._iterator = iter(list(events))
        self._error = error

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> FakeStreamEvent:
        try:
            return next(self._iterator)
        except StopIteration as exc:
            if self._error is not None:
                raise self._error from None
            raise StopAsyncIteration from exc


class _FakeStreamContext:
    def __init__(self, events: Iterable[FakeStreamEvent], *, error: Exception | None = None):
        self._events = list(events)
        self._error = error

    async def __aenter__(self) -> _FakeStream:
        return _FakeStream(self._events, error=self._error)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeCompletions:
    def __init__(self, events: Iterable[FakeStreamEvent], *, error: Exception | None = None):
        self._events = list(events)
        self._error = error
        self.calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> _FakeStreamContext:
        self.calls.append(kwargs)
        return _FakeStreamContext(self._events, error=self._error)


class FakeModels:
    def __init__(self, ids: Iterable[str]):
        self._payload = [SimpleNamespace(id=item) for item in ids]
        self.calls = 0

    async def list(self) -> SimpleNamespace:
        self.calls += 1
        return SimpleNamespace(data=self._payload)


def make_openai_client(
    events: Iterable[FakeStreamEvent],
    *,
    models: Iterable[str] = ("test-model",),
    error: Exception | None = None,
) -> SimpleNamespace:
    completions = FakeCompletions(events, error=error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions), models=FakeModels(models))


def usage_chunk(total: int, prompt: int = 0, completion: int = 0) -> FakeStreamEvent:
    usage = SimpleNamespace(
        model_dump=lambda: {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": total}
    )
    return FakeStreamEvent(type="chunk", chunk=SimpleNamespace(usage=usage))
