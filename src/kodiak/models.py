"""Conversation, message and attachment records shared by the store and controller."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

UNTITLED_TITLE = "Untitled Chat"
MAX_TITLE_LENGTH = 50


def utc_now() -> datetime:
    return datetime.now(UTC)


class AttachmentKind(str, Enum):
    """Kinds of payload a message can carry."""

    IMAGE = "image"
    DOCUMENT = "document"


@dataclass
class Attachment:
    """Binary payload bound to a message at creation time."""

    kind: AttachmentKind
    data: bytes
    filename: str = ""
    derived_text: str | None = None
    id: UUID = field(default_factory=uuid4)
    message_id: UUID | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "kind": self.kind.value,
            "filename": self.filename,
            "data": base64.b64encode(self.data).decode("ascii"),
            "derived_text": self.derived_text,
            "message_id": str(self.message_id) if self.message_id else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Attachment:
        message_id = payload.get("message_id")
        return cls(
            id=UUID(str(payload["id"])),
            kind=AttachmentKind(payload.get("kind", AttachmentKind.IMAGE.value)),
            filename=str(payload.get("filename") or ""),
            data=base64.b64decode(payload.get("data") or b""),
            derived_text=payload.get("derived_text"),
            message_id=UUID(str(message_id)) if message_id else None,
        )


@dataclass
class Message:
    """A single chat message.

    ``content`` is mutated in place while an assistant reply streams;
    ``timestamp`` is fixed at creation and alone defines ordering.
    """

    conversation_id: UUID
    content: str
    is_user: bool
    timestamp: datetime = field(default_factory=utc_now)
    attachments: list[Attachment] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)

    @property
    def role(self) -> str:
        return "user" if self.is_user else "assistant"

    def images(self) -> list[Attachment]:
        return [a for a in self.attachments if a.kind is AttachmentKind.IMAGE]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "conversation_id": str(self.conversation_id),
            "content": self.content,
            "is_user": self.is_user,
            "timestamp": self.timestamp.isoformat(),
            "attachments": [a.to_dict() for a in self.attachments],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Message:
        return cls(
            id=UUID(str(payload["id"])),
            conversation_id=UUID(str(payload["conversation_id"])),
            content=str(payload.get("content") or ""),
            is_user=bool(payload.get("is_user")),
            timestamp=datetime.fromisoformat(str(payload["timestamp"])),
            attachments=[
                Attachment.from_dict(item)
                for item in payload.get("attachments") or []
                if isinstance(item, dict)
            ],
        )


@dataclass
class Conversation:
    """A chat and the messages it owns."""

    title: str = UNTITLED_TITLE
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    is_pinned: bool = False
    messages: list[Message] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)

    @property
    def is_untitled(self) -> bool:
        return self.title == UNTITLED_TITLE

    def ordered_messages(self) -> list[Message]:
        """Messages in timestamp order regardless of storage order."""
        return sorted(self.messages, key=lambda m: m.timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "is_pinned": self.is_pinned,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Conversation:
        return cls(
            id=UUID(str(payload["id"])),
            title=str(payload.get("title") or UNTITLED_TITLE),
            created_at=datetime.fromisoformat(str(payload["created_at"])),
            updated_at=datetime.fromisoformat(str(payload["updated_at"])),
            is_pinned=bool(payload.get("is_pinned", False)),
            messages=[
                Message.from_dict(item)
                for item in payload.get("messages") or []
                if isinstance(item, dict)
            ],
        )
