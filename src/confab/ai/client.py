"""Async streaming client for OpenAI-compatible chat endpoints."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Protocol, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception, retry_if_exception_type, stop_after_attempt, wait_exponential

try:  # pragma: no cover - optional dependency used when installed
    import tiktoken  # type: ignore
except Exception:  # pragma: no cover - optional fallback when package missing
    tiktoken = None

LOGGER = logging.getLogger(__name__)

_BYTES_PER_TOKEN = 4
_TIKTOKEN_WARNING_EMITTED = False

RETRYABLE_ERRORS = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)


class TokenCounter(Protocol):
    def count(self, text: str) -> int:
        ...


class ApproxByteCounter:
    """Estimates tokens from the UTF-8 byte length of the text."""

    def __init__(self, *, bytes_per_token: int = _BYTES_PER_TOKEN) -> None:
        self._bytes_per_token = max(1, int(bytes_per_token))

    def count(self, text: str) -> int:
        if not text:
            return 0
        return max(1, math.ceil(len(text.encode("utf-8", errors="ignore")) / self._bytes_per_token))


class TiktokenCounter:
    """Exact token counts for a model via ``tiktoken``."""

    def __init__(self, model_name: str) -> None:
        if tiktoken is None:  # pragma: no cover - depends on optional dependency
            raise RuntimeError("tiktoken is not installed")
        token_module = cast(Any, tiktoken)
        try:
            self._encoding = token_module.encoding_for_model(model_name)
        except Exception:
            LOGGER.debug("Falling back to cl100k_base encoding for model %s", model_name)
            self._encoding = token_module.get_encoding("cl100k_base")

    def count(self, text: str) -> int:
        return len(self._encoding.encode(text)) if text else 0


def build_token_counter(model_name: str | None) -> TokenCounter:
    """Return the best available counter for ``model_name``."""

    global _TIKTOKEN_WARNING_EMITTED
    if not model_name:
        return ApproxByteCounter()
    if tiktoken is None:
        if not _TIKTOKEN_WARNING_EMITTED:
            _TIKTOKEN_WARNING_EMITTED = True
            LOGGER.warning(
                "tiktoken is not installed; token counts are estimated. Install the "
                "[ai_tokenizers] extra for exact counts."
            )
        return ApproxByteCounter()
    try:
        return TiktokenCounter(model_name)
    except Exception as exc:  # pragma: no cover - tokenizer download failures
        LOGGER.debug("Failed to initialize tiktoken counter for %s: %s", model_name, exc)
        return ApproxByteCounter()


@dataclass(slots=True)
class ClientSettings:
    """Connection settings for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True)
class AIStreamEvent:
    """Normalized streaming event: a text delta, the final text, or usage."""

    type: str
    content: str | None = None
    usage: Dict[str, Any] | None = None


class AIClient:
    """Thin async wrapper adding retries and event normalization to ``AsyncOpenAI``."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._models_cache: List[str] | None = None
        self._models_lock = asyncio.Lock()
        self._counters: Dict[str, TokenCounter] = {}

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        model: str | None = None,
        **params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Stream a chat completion.

        Transient failures are retried only until the first event is yielded;
        after that the error propagates so no text is streamed twice.
        """

        payload: Dict[str, Any] = {
            "model": model or self._settings.model,
            "messages": [dict(message) for message in messages],
        }
        if not payload["messages"]:
            raise ValueError("At least one message is required to start a chat")
        payload.update({key: value for key, value in params.items() if value is not None})
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_payload(payload)

        yielded = False
        async for attempt in self._retrying(lambda exc: not yielded):
            with attempt:
                async with self._client.chat.completions.stream(**payload) as stream:
                    async for event in stream:
                        normalized = self._normalize_event(event)
                        if normalized is not None:
                            yielded = True
                            yield normalized
                break

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        if self._models_cache is not None and not force_refresh:
            return list(self._models_cache)
        async with self._models_lock:
            if self._models_cache is None or force_refresh:
                response = await self._client.models.list()
                self._models_cache = [item.id for item in response.data if getattr(item, "id", None)]
            return list(self._models_cache)

    def count_tokens(self, text: str, *, model: str | None = None) -> int:
        model_name = (model or self._settings.model or "").strip().lower()
        counter = self._counters.get(model_name)
        if counter is None:
            counter = self._counters[model_name] = build_token_counter(model_name)
        return counter.count(text)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=httpx.Timeout(settings.request_timeout) if settings.request_timeout else None,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
            max_retries=0,
        )

    def _retrying(self, can_retry: Callable[[BaseException], bool] | None = None) -> AsyncRetrying:
        retry = retry_if_exception_type(RETRYABLE_ERRORS)
        if can_retry is not None:
            retry = retry & retry_if_exception(can_retry)
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry,
        )

    @staticmethod
    def _normalize_event(event: Any) -> AIStreamEvent | None:
        event_type = getattr(event, "type", None)
        if event_type == "content.delta":
            delta = getattr(event, "delta", None)
            return AIStreamEvent(type=event_type, content=str(delta)) if delta else None
        if event_type == "content.done":
            return AIStreamEvent(type=event_type, content=getattr(event, "content", None))
        if event_type == "chunk":
            usage = getattr(getattr(event, "chunk", None), "usage", None)
            if usage is None:
                return None
            dump = getattr(usage, "model_dump", None)
            return AIStreamEvent(type="usage", usage=dump() if callable(dump) else dict(usage))
        return None

    @staticmethod
    def _log_payload(payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Chat payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Chat payload:\n%s", serialized)
