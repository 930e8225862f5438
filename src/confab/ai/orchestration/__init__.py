"""Request lifecycle orchestration for chat sessions."""

from .request_controller import (
    RequestController,
    RequestOutcome,
    RequestState,
    ResponseSink,
)

__all__ = [
    "RequestController",
    "RequestOutcome",
    "RequestState",
    "ResponseSink",
]
