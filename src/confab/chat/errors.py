"""Error types raised by the chat session engine.

Every error carries a machine-readable ``code`` so hosts can map failures to
notifications without parsing messages.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "ErrorCode",
    "ChatError",
    "NoMessagesToSubmit",
    "RequestInProgress",
    "ParseUnavailable",
    "SettingsDecodeError",
    "AdapterMissing",
    "StreamError",
    "ToolExecutionError",
    "DocumentLockedError",
]


class ErrorCode:
    """Constants for error codes attached to chat errors."""

    NO_MESSAGES = "no_messages"
    REQUEST_IN_PROGRESS = "request_in_progress"
    PARSE_UNAVAILABLE = "parse_unavailable"
    SETTINGS_DECODE = "settings_decode"
    ADAPTER_MISSING = "adapter_missing"
    STREAM_ERROR = "stream_error"
    TOOL_EXECUTION = "tool_execution"
    DOCUMENT_LOCKED = "document_locked"


class ChatError(Exception):
    """Base class for all chat session errors."""

    code: str = "chat_error"
    recoverable: bool = True

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class NoMessagesToSubmit(ChatError):
    """Raised when a submission finds no user content to send."""

    code = ErrorCode.NO_MESSAGES

    def __init__(self, message: str = "No messages to submit") -> None:
        super().__init__(message)


class RequestInProgress(ChatError):
    """Raised when a session already has a request in flight."""

    code = ErrorCode.REQUEST_IN_PROGRESS

    def __init__(self, message: str = "A request is already in progress") -> None:
        super().__init__(message)


class ParseUnavailable(ChatError):
    """Raised when the markdown grammar cannot be loaded."""

    code = ErrorCode.PARSE_UNAVAILABLE


class SettingsDecodeError(ChatError):
    """Raised when the settings block is missing or is not a YAML mapping."""

    code = ErrorCode.SETTINGS_DECODE

    def __init__(self, message: str, *, line: int | None = None) -> None:
        super().__init__(message, line=line)
        self.line = line


class AdapterMissing(ChatError):
    """Raised when no adapter could be resolved for a new session."""

    code = ErrorCode.ADAPTER_MISSING
    recoverable = False

    def __init__(self, name: Any = None) -> None:
        label = name if isinstance(name, str) else getattr(name, "name", None)
        message = f"No adapter found for '{label}'" if label else "No adapter found"
        super().__init__(message, adapter=label)


class StreamError(ChatError):
    """Wraps an error delivered by the adapter while streaming."""

    code = ErrorCode.STREAM_ERROR

    def __init__(self, error: Any) -> None:
        super().__init__(str(error) or "Stream error", cause=repr(error))
        self.error = error


class ToolExecutionError(ChatError):
    """Raised when a single tool invocation fails."""

    code = ErrorCode.TOOL_EXECUTION

    def __init__(
        self,
        message: str,
        tool_name: str = "",
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, tool=tool_name)
        self.tool_name = tool_name
        self.cause = cause


class DocumentLockedError(ChatError):
    """Raised when a structural edit targets a read-only chat document."""

    code = ErrorCode.DOCUMENT_LOCKED

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id} is read-only while a request is running")
        self.document_id = document_id
