"""Editor package containing the chat document model and its lock."""

from . import document_model, lock

__all__ = ["document_model", "lock"]
