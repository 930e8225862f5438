"""Tests for :mod:`confab.ai.orchestration.request_controller`."""

from __future__ import annotations

import asyncio
import threading
from typing import Any

import pytest

from confab.ai.adapters import ChatOutput
from confab.ai.orchestration import RequestController, RequestOutcome, RequestState
from confab.chat.errors import RequestInProgress, StreamError
from confab.editor.document_model import ChatDocument
from confab.editor.lock import DocumentLock, LockReason

from tests.helpers import FailingAdapter, FakeAdapter, drain


class _Sink:
    def __init__(self) -> None:
        self.deliveries: list[ChatOutput] = []
        self.tokens: list[Any] = []
        self.outcomes: list[RequestOutcome] = []

    def on_delivery(self, output: ChatOutput) -> None:
        self.deliveries.append(output)

    def on_tokens(self, tokens: Any) -> None:
        self.tokens.append(tokens)

    def on_finished(self, outcome: RequestOutcome) -> None:
        self.outcomes.append(outcome)


TRANSCRIPT = [{"role": "user", "content": "Hello"}]


def _controller(with_lock: bool = False):
    sink = _Sink()
    document = ChatDocument()
    lock = DocumentLock(document) if with_lock else None
    return RequestController(sink, lock=lock), sink, document


@pytest.mark.asyncio
async def test_deliveries_are_applied_in_order_then_completed() -> None:
    controller, sink, _ = _controller()
    adapter = FakeAdapter()

    controller.start(adapter, TRANSCRIPT, params={"temperature": 0.1}, cycle=1)
    assert controller.state is RequestState.STREAMING
    assert controller.current_request is adapter.handle

    adapter.deliver("Hel")
    adapter.deliver("lo", role=None)
    adapter.finish()
    outcome = await controller.wait()

    assert [item.content for item in sink.deliveries] == ["Hel", "lo"]
    assert sink.deliveries[0].role == "llm"
    assert outcome == RequestOutcome(state=RequestState.COMPLETED, cycle=1)
    assert controller.state is RequestState.IDLE
    assert controller.current_request is None
    assert adapter.last_request == {"transcript": TRANSCRIPT, "params": {"temperature": 0.1}}


@pytest.mark.asyncio
async def test_second_start_is_rejected() -> None:
    controller, _, _ = _controller()
    controller.start(FakeAdapter(), TRANSCRIPT)

    with pytest.raises(RequestInProgress):
        controller.start(FakeAdapter(), TRANSCRIPT)

    controller.stop()


@pytest.mark.asyncio
async def test_stop_shuts_down_handle_and_drops_late_deliveries() -> None:
    controller, sink, _ = _controller()
    adapter = FakeAdapter()
    controller.start(adapter, TRANSCRIPT, cycle=3)
    handle = adapter.handle

    assert controller.stop() is True
    adapter.deliver("late")
    adapter.finish()
    await drain()

    assert handle.shutdown_calls == 1
    assert sink.deliveries == []
    assert [outcome.state for outcome in sink.outcomes] == [RequestState.CANCELLED]
    assert controller.current_request is None


@pytest.mark.asyncio
async def test_stop_is_idempotent() -> None:
    controller, sink, _ = _controller()

    assert controller.stop() is False

    controller.start(FakeAdapter(), TRANSCRIPT)
    assert controller.stop() is True
    assert controller.stop() is False
    assert len(sink.outcomes) == 1


@pytest.mark.asyncio
async def test_error_delivery_fails_the_request() -> None:
    controller, sink, _ = _controller()
    adapter = FakeAdapter()
    controller.start(adapter, TRANSCRIPT)

    adapter.deliver("partial")
    adapter.fail(RuntimeError("rate limited"))
    adapter.deliver("ignored")
    await controller.wait()

    assert [item.content for item in sink.deliveries] == ["partial"]
    outcome = sink.outcomes[-1]
    assert outcome.state is RequestState.FAILED
    assert isinstance(outcome.error, StreamError)
    assert "rate limited" in outcome.error.message
    assert adapter.handle.shutdown_calls == 1


@pytest.mark.asyncio
async def test_error_status_from_chat_output_fails_the_request() -> None:
    controller, sink, _ = _controller()
    adapter = FakeAdapter()
    controller.start(adapter, TRANSCRIPT)

    adapter.callbacks.callback(None, {"error": "context length exceeded"})
    await controller.wait()

    assert sink.outcomes[-1].state is RequestState.FAILED
    assert sink.outcomes[-1].error.message == "context length exceeded"


@pytest.mark.asyncio
async def test_adapter_request_failure_is_a_failed_outcome() -> None:
    controller, sink, _ = _controller(with_lock=True)

    controller.start(FailingAdapter(), TRANSCRIPT, cycle=1)

    assert sink.outcomes[-1].state is RequestState.FAILED
    assert "connection refused" in sink.outcomes[-1].error.message
    assert controller.state is RequestState.IDLE


@pytest.mark.asyncio
async def test_tokens_are_forwarded_when_supported() -> None:
    controller, sink, _ = _controller()
    adapter = FakeAdapter(tokens=True)
    controller.start(adapter, TRANSCRIPT)

    adapter.deliver_usage({"total_tokens": 12})
    adapter.finish()
    await controller.wait()

    assert sink.tokens == [{"total_tokens": 12}]
    assert sink.deliveries == []


@pytest.mark.asyncio
async def test_tokens_ignored_without_feature() -> None:
    controller, sink, _ = _controller()
    adapter = FakeAdapter(tokens=False)
    controller.start(adapter, TRANSCRIPT)

    adapter.deliver_usage({"total_tokens": 12})
    adapter.finish()
    await controller.wait()

    assert sink.tokens == []


@pytest.mark.asyncio
async def test_document_locked_while_streaming() -> None:
    controller, _, document = _controller(with_lock=True)
    adapter = FakeAdapter()

    controller.start(adapter, TRANSCRIPT)
    assert document.is_readonly()

    adapter.finish()
    await controller.wait()
    assert not document.is_readonly()


@pytest.mark.asyncio
async def test_request_takes_over_a_held_lock_until_it_finishes() -> None:
    sink = _Sink()
    document = ChatDocument()
    lock = DocumentLock(document)
    held = lock.acquire(LockReason.TOOL_RUN)
    controller = RequestController(sink, lock=lock)
    adapter = FakeAdapter()

    controller.start(adapter, TRANSCRIPT)

    assert lock.active_session.reason is LockReason.REQUEST
    assert lock.release(held.session_id) is False
    assert document.is_readonly()

    adapter.deliver("still streaming")
    await drain()
    assert controller.state is RequestState.STREAMING
    assert document.is_readonly()

    adapter.finish()
    await controller.wait()

    assert lock.active_session is None
    assert not document.is_readonly()


@pytest.mark.asyncio
async def test_deliveries_from_another_thread_keep_arrival_order() -> None:
    controller, sink, _ = _controller()
    adapter = FakeAdapter()
    controller.start(adapter, TRANSCRIPT)

    def produce() -> None:
        for index in range(20):
            adapter.deliver(str(index), role=None)
        adapter.finish()

    worker = threading.Thread(target=produce)
    worker.start()
    await asyncio.get_running_loop().run_in_executor(None, worker.join)
    await controller.wait()

    assert [item.content for item in sink.deliveries] == [str(index) for index in range(20)]
    assert sink.outcomes[-1].state is RequestState.COMPLETED


@pytest.mark.asyncio
async def test_generation_increases_per_request() -> None:
    controller, _, _ = _controller()
    adapter = FakeAdapter()

    controller.start(adapter, TRANSCRIPT)
    first = controller.generation
    adapter.finish()
    await controller.wait()
    controller.start(adapter, TRANSCRIPT)

    assert controller.generation > first
    controller.stop()
