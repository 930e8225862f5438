"""Host-facing surface: typed events published by chat sessions."""

from .events import Diagnostic, EventBus

__all__ = ["EventBus", "Diagnostic"]
