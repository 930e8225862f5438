"""Lifecycle of the single in-flight model request of a chat session.

Adapter callbacks may fire from any thread. They only post onto an asyncio
queue; one pump task per request drains it and applies deliveries to the
session in arrival order. Every request gets a generation number, and items
posted for an older generation are dropped, so nothing delivered after
:meth:`RequestController.stop` reaches the session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

from ...chat.errors import ChatError, RequestInProgress, StreamError
from ...editor.lock import DocumentLock, LockReason
from ..adapters import Adapter, ChatOutput, RequestCallbacks, RequestHandle

LOGGER = logging.getLogger(__name__)


class RequestState(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({RequestState.COMPLETED, RequestState.FAILED, RequestState.CANCELLED})


@dataclass(slots=True, frozen=True)
class RequestOutcome:
    """How a request ended."""

    state: RequestState
    cycle: int
    error: ChatError | None = None

    @property
    def ok(self) -> bool:
        return self.state is RequestState.COMPLETED


class ResponseSink(Protocol):
    """Receives the effects of a request; implemented by the chat session."""

    def on_delivery(self, output: ChatOutput) -> None:
        ...

    def on_tokens(self, tokens: Any) -> None:
        ...

    def on_finished(self, outcome: RequestOutcome) -> None:
        ...


_DELIVERY = "delivery"
_DONE = "done"


class RequestController:
    """Owns ``current_request`` and drives ``Idle -> Submitting -> Streaming -> end -> Idle``."""

    def __init__(self, sink: ResponseSink, *, lock: DocumentLock | None = None) -> None:
        self._sink = sink
        self._lock = lock
        self._state = RequestState.IDLE
        self._generation = 0
        self._cycle = 0
        self._adapter: Adapter | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[tuple[str, Any, Any]] | None = None
        self._pump: asyncio.Task[None] | None = None
        self._lock_session_id: str | None = None
        self.current_request: RequestHandle | None = None
        self.last_outcome: RequestOutcome | None = None

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in (RequestState.SUBMITTING, RequestState.STREAMING)

    @property
    def generation(self) -> int:
        return self._generation

    def start(
        self,
        adapter: Adapter,
        transcript: Sequence[Mapping[str, Any]],
        *,
        params: Mapping[str, Any] | None = None,
        cycle: int = 0,
    ) -> None:
        """Hand ``transcript`` to ``adapter`` and begin streaming.

        Must be called from the event loop thread. Returns as soon as the
        request is dispatched.

        Raises:
            RequestInProgress: When a request is already in flight.
        """

        if self.is_active:
            raise RequestInProgress()
        loop = asyncio.get_running_loop()
        self._state = RequestState.SUBMITTING
        self._generation += 1
        generation = self._generation
        self._cycle = cycle
        self._adapter = adapter
        self._loop = loop
        self._queue = asyncio.Queue()
        if self._lock is not None:
            self._lock_session_id = self._lock.claim(LockReason.REQUEST, metadata={"cycle": cycle}).session_id

        def callback(err: Any, delivery: Any) -> None:
            self._post(generation, (_DELIVERY, err, delivery))

        def done() -> None:
            self._post(generation, (_DONE, None, None))

        try:
            handle = adapter.request(transcript, RequestCallbacks(callback=callback, done=done), params=params)
        except Exception as exc:
            LOGGER.warning("Adapter %s failed to start the request: %s", getattr(adapter, "name", adapter), exc)
            self._finish(RequestState.FAILED, StreamError(exc))
            return
        if generation != self._generation:
            # The adapter finished or was stopped synchronously inside request().
            if handle is not None:
                handle.shutdown()
            return
        self.current_request = handle
        self._state = RequestState.STREAMING
        self._pump = loop.create_task(self._run(generation, self._queue))
        LOGGER.info("Request cycle %s streaming via %s", cycle, getattr(adapter, "name", adapter))

    def stop(self) -> bool:
        """Cancel the in-flight request. Safe to call at any time.

        Returns ``True`` when a request was actually cancelled.
        """

        if not self.is_active:
            return False
        handle = self.current_request
        self._generation += 1
        if handle is not None:
            try:
                handle.shutdown()
            except Exception:
                LOGGER.exception("Request handle failed to shut down")
        self.current_request = None
        pump = self._pump
        if pump is not None and pump is not _current_task():
            pump.cancel()
        LOGGER.info("Request cycle %s cancelled", self._cycle)
        self._finish(RequestState.CANCELLED)
        return True

    async def wait(self) -> RequestOutcome | None:
        """Wait until the current request, if any, has finished."""

        pump = self._pump
        if pump is not None and pump is not _current_task():
            await asyncio.wait({pump})
        return self.last_outcome

    def _post(self, generation: int, item: tuple[str, Any, Any]) -> None:
        if generation != self._generation:
            LOGGER.debug("Dropping %s for stale request generation %s", item[0], generation)
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._enqueue(generation, item)
        else:
            loop.call_soon_threadsafe(self._enqueue, generation, item)

    def _enqueue(self, generation: int, item: tuple[str, Any, Any]) -> None:
        if generation == self._generation and self._queue is not None:
            self._queue.put_nowait(item)

    async def _run(self, generation: int, queue: asyncio.Queue[tuple[str, Any, Any]]) -> None:
        adapter = self._adapter
        while True:
            kind, err, delivery = await queue.get()
            if generation != self._generation:
                return
            if kind == _DONE:
                LOGGER.info("Request cycle %s completed", self._cycle)
                self._finish(RequestState.COMPLETED)
                return
            if err is not None:
                self._fail(StreamError(err))
                return
            try:
                self._apply(adapter, delivery)
            except ChatError as exc:
                self._fail(exc)
                return
            except Exception as exc:
                LOGGER.exception("Failed to apply stream delivery")
                self._fail(StreamError(exc))
                return
            if generation != self._generation:
                return

    def _apply(self, adapter: Any, delivery: Any) -> None:
        features = getattr(adapter, "features", None)
        handlers = getattr(adapter, "handlers", None)
        if features is not None and features.tokens and handlers is not None and handlers.tokens:
            tokens = handlers.tokens(adapter, delivery)
            if tokens is not None:
                self._sink.on_tokens(tokens)
        output = handlers.chat_output(adapter, delivery) if handlers is not None else None
        if output is None:
            return
        if not output.ok:
            raise StreamError(output.content or "Adapter reported an error")
        if output.content or output.role:
            self._sink.on_delivery(output)

    def _fail(self, error: ChatError) -> None:
        LOGGER.warning("Request cycle %s failed: %s", self._cycle, error)
        handle = self.current_request
        self._generation += 1
        if handle is not None:
            try:
                handle.shutdown()
            except Exception:
                LOGGER.debug("Request handle failed to shut down", exc_info=True)
        self._finish(RequestState.FAILED, error)

    def _finish(self, state: RequestState, error: ChatError | None = None) -> None:
        if state not in TERMINAL_STATES:
            raise ValueError(f"{state} is not a terminal request state")
        if state is not RequestState.CANCELLED:
            # A completed or failed request must not accept late items either.
            self._generation += 1
        self._state = state
        self.current_request = None
        self._pump = None if self._pump is _current_task() else self._pump
        self._queue = None
        if self._lock is not None and self._lock_session_id is not None:
            self._lock.release(self._lock_session_id)
            self._lock_session_id = None
        outcome = RequestOutcome(state=state, cycle=self._cycle, error=error)
        self.last_outcome = outcome
        self._state = RequestState.IDLE
        self._sink.on_finished(outcome)


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
