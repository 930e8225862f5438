"""Chat message data model and the ordered message store."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, Literal, Optional

LOGGER = logging.getLogger(__name__)

ChatRole = Literal["system", "user", "llm"]

SYSTEM_ROLE: ChatRole = "system"
USER_ROLE: ChatRole = "user"
LLM_ROLE: ChatRole = "llm"
ROLES: tuple[ChatRole, ...] = (SYSTEM_ROLE, USER_ROLE, LLM_ROLE)


def make_id(role: str, content: str) -> int:
    """Return a deterministic integer id for a role/content pair."""

    payload = json.dumps({"role": role, "content": content}, sort_keys=True, ensure_ascii=False)
    digest = hashlib.sha1(payload.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


@dataclass(slots=True)
class Message:
    """One entry in the conversation transcript.

    ``id`` is derived from ``role`` and ``content`` and is recomputed every
    time the content changes through :meth:`update_content`.
    """

    role: ChatRole
    content: str
    visible: bool = True
    tag: Optional[str] = None
    insertion_index: Optional[int] = None
    id: int = 0

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown chat role '{self.role}'")
        self.content = self.content or ""
        self.id = make_id(self.role, self.content)

    def update_content(self, content: str) -> None:
        self.content = content or ""
        self.id = make_id(self.role, self.content)

    def with_content(self, content: str) -> "Message":
        """Return a copy carrying ``content`` and the matching id."""

        return replace(self, content=content)

    def as_transcript_entry(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "visible": self.visible,
        }
        if self.tag is not None:
            payload["tag"] = self.tag
        if self.insertion_index is not None:
            payload["insertion_index"] = self.insertion_index
        return payload


@dataclass(slots=True)
class MessageStore:
    """Ordered conversation history; the single source of truth for the transcript.

    Duplicate content is legal and never suppressed. Callers serialize
    mutations per session.
    """

    _messages: list[Message] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def __bool__(self) -> bool:
        return bool(self._messages)

    def append(
        self,
        role: ChatRole,
        content: str,
        *,
        visible: bool = True,
        tag: str | None = None,
        index: int | None = None,
    ) -> Message:
        """Add a message at the end, or at ``index`` when given."""

        message = Message(
            role=role,
            content=content,
            visible=visible,
            tag=tag,
            insertion_index=index,
        )
        if index is None:
            self._messages.append(message)
        else:
            self._messages.insert(index, message)
        LOGGER.debug("Stored %s message %s (tag=%s, visible=%s)", role, message.id, tag, visible)
        return message

    def insert(
        self,
        index: int,
        role: ChatRole,
        content: str,
        *,
        visible: bool = True,
        tag: str | None = None,
    ) -> Message:
        return self.append(role, content, visible=visible, tag=tag, index=index)

    def extend(self, messages: list[Message]) -> None:
        self._messages.extend(messages)

    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def first(self) -> Message | None:
        return self._messages[0] if self._messages else None

    def pop(self, index: int = -1) -> Message:
        return self._messages.pop(index)

    def remove(self, message_id: int) -> bool:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                del self._messages[index]
                return True
        return False

    def remove_last_if_role(self, role: ChatRole) -> Message | None:
        """Drop the trailing message when it has ``role``; no-op otherwise."""

        last = self.last()
        if last is None or last.role != role:
            return None
        return self._messages.pop()

    def remove_first_if_role(self, role: ChatRole) -> Message | None:
        first = self.first()
        if first is None or first.role != role:
            return None
        return self._messages.pop(0)

    def has_user_message(self, trailing: str | None = None) -> bool:
        """True when a stored user message exists or ``trailing`` holds unsent text."""

        if trailing and trailing.strip():
            return True
        return any(message.role == USER_ROLE for message in self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def visible(self) -> list[Message]:
        return [message for message in self._messages if message.visible]

    def with_tag(self, tag: str) -> list[Message]:
        return [message for message in self._messages if message.tag == tag]

    def as_transcript(self) -> list[Dict[str, Any]]:
        return [message.as_transcript_entry() for message in self._messages]

    def snapshot(self) -> list[Message]:
        return list(self._messages)
