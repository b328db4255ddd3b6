"""Conversation store: in-memory records made durable by explicit ``save()`` calls."""

from __future__ import annotations

from datetime import datetime, timedelta
import json
import logging
import os
from pathlib import Path
from uuid import UUID

from .exceptions import PersistenceError, PersistenceFormatError
from .models import (
    MAX_TITLE_LENGTH,
    Attachment,
    Conversation,
    Message,
    utc_now,
)

LOGGER = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"


class ConversationStore:
    """Own chats, their messages and attachments.

    Every mutation happens in memory first; ``save()`` is the durability
    checkpoint that writes one JSON document per conversation plus an index.
    When ``enabled`` is false the store is memory-only and ``save()`` is a
    no-op. Disk failures surface as ``PersistenceError``.
    """

    def __init__(self, enabled: bool = False, directory: str | None = None) -> None:
        self.enabled = enabled and directory is not None
        self.directory = Path(directory).expanduser() if directory else None
        self._conversations: dict[UUID, Conversation] = {}
        self._message_index: dict[UUID, Message] = {}
        self._dirty: set[UUID] = set()
        self._deleted: set[UUID] = set()

    # -- Paths -------------------------------------------------------------

    def _enforce_permissions(self, path: Path, mode: int = 0o600) -> None:
        if os.name != "posix":
            return
        try:
            path.chmod(mode)
        except OSError:
            pass

    def _ensure_directory(self) -> Path:
        assert self.directory is not None
        self.directory.mkdir(parents=True, exist_ok=True)
        self._enforce_permissions(self.directory, 0o700)
        return self.directory

    def _conversation_path(self, conversation_id: UUID) -> Path:
        assert self.directory is not None
        return self.directory / f"{conversation_id}.json"

    # -- Conversations -----------------------------------------------------

    def create_conversation(self, title: str | None = None) -> Conversation:
        conversation = Conversation() if title is None else Conversation(title=title)
        self._conversations[conversation.id] = conversation
        self._dirty.add(conversation.id)
        return conversation

    def get_conversation(self, conversation_id: UUID) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def fetch_conversations(self) -> list[Conversation]:
        """All conversations, most recently updated first."""
        return sorted(
            self._conversations.values(), key=lambda c: c.updated_at, reverse=True
        )

    def update_conversation(
        self,
        conversation_id: UUID,
        *,
        title: str | None = None,
        pinned: bool | None = None,
    ) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        if title is not None:
            conversation.title = title[:MAX_TITLE_LENGTH]
        if pinned is not None:
            conversation.is_pinned = pinned
        self.touch(conversation_id)
        return conversation

    def touch(self, conversation_id: UUID) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return
        conversation.updated_at = utc_now()
        self._dirty.add(conversation_id)

    def delete_conversation(self, conversation_id: UUID) -> bool:
        conversation = self._conversations.pop(conversation_id, None)
        if conversation is None:
            return False
        for message in conversation.messages:
            self._message_index.pop(message.id, None)
        self._dirty.discard(conversation_id)
        self._deleted.add(conversation_id)
        return True

    def delete_all(self) -> None:
        for conversation_id in list(self._conversations):
            self.delete_conversation(conversation_id)

    # -- Messages ----------------------------------------------------------

    def _next_timestamp(self, conversation: Conversation) -> datetime:
        now = utc_now()
        if conversation.messages:
            latest = max(m.timestamp for m in conversation.messages)
            if now <= latest:
                now = latest + timedelta(microseconds=1)
        return now

    def create_message(
        self,
        content: str,
        is_user: bool,
        conversation_id: UUID,
        attachments: list[Attachment] | None = None,
        *,
        timestamp: datetime | None = None,
    ) -> Message:
        """Create a message with its attachments bound in the same step."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise PersistenceError(f"Unknown conversation {conversation_id}.")
        message = Message(
            conversation_id=conversation_id,
            content=content,
            is_user=is_user,
            timestamp=timestamp or self._next_timestamp(conversation),
        )
        for attachment in attachments or []:
            attachment.message_id = message.id
            message.attachments.append(attachment)
        conversation.messages.append(message)
        self._message_index[message.id] = message
        self.touch(conversation_id)
        return message

    def get_message(self, message_id: UUID) -> Message | None:
        return self._message_index.get(message_id)

    def messages_for(self, conversation_id: UUID) -> list[Message]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return []
        return conversation.ordered_messages()

    def update_message_content(self, message_id: UUID, content: str) -> Message | None:
        message = self._message_index.get(message_id)
        if message is None:
            return None
        message.content = content
        self.touch(message.conversation_id)
        return message

    def add_attachment(self, message_id: UUID, attachment: Attachment) -> Message | None:
        """Late-bind an attachment to an already persisted message."""
        message = self._message_index.get(message_id)
        if message is None:
            return None
        attachment.message_id = message.id
        message.attachments.append(attachment)
        self.touch(message.conversation_id)
        return message

    def delete_message(self, message_id: UUID) -> bool:
        message = self._message_index.pop(message_id, None)
        if message is None:
            return False
        conversation = self._conversations.get(message.conversation_id)
        if conversation is not None:
            conversation.messages = [m for m in conversation.messages if m.id != message_id]
            self.touch(conversation.id)
        return True

    # -- Durability --------------------------------------------------------

    def save(self) -> None:
        """Write dirty conversations and the index to disk."""
        if not self.enabled:
            self._dirty.clear()
            self._deleted.clear()
            return
        try:
            self._ensure_directory()
            for conversation_id in list(self._deleted):
                self._conversation_path(conversation_id).unlink(missing_ok=True)
            for conversation_id in list(self._dirty):
                conversation = self._conversations.get(conversation_id)
                if conversation is None:
                    continue
                target = self._conversation_path(conversation_id)
                target.write_text(
                    json.dumps(conversation.to_dict(), ensure_ascii=False, indent=2),
                    encoding="utf-8",
                )
                self._enforce_permissions(target)
            self._write_index()
        except OSError as exc:
            raise PersistenceError(f"Failed to save conversations: {exc}") from exc
        self._dirty.clear()
        self._deleted.clear()

    def _write_index(self) -> None:
        assert self.directory is not None
        rows = [
            {
                "id": str(c.id),
                "title": c.title,
                "updated_at": c.updated_at.isoformat(),
                "is_pinned": c.is_pinned,
            }
            for c in self.fetch_conversations()
        ]
        index_path = self.directory / INDEX_FILENAME
        index_path.write_text(
            json.dumps(rows, ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        self._enforce_permissions(index_path)

    def load(self) -> int:
        """Rehydrate conversations from disk; returns how many were loaded.

        Unreadable documents are skipped with a warning.
        """
        if not self.enabled or self.directory is None or not self.directory.exists():
            return 0
        loaded = 0
        for path in sorted(self.directory.glob("*.json")):
            if path.name == INDEX_FILENAME:
                continue
            try:
                conversation = self._load_document(path)
            except PersistenceFormatError as exc:
                LOGGER.warning(
                    "store.load.skipped",
                    extra={"event": "store.load.skipped", "path": str(path), "error": str(exc)},
                )
                continue
            self._conversations[conversation.id] = conversation
            for message in conversation.messages:
                self._message_index[message.id] = message
            loaded += 1
        return loaded

    @staticmethod
    def _load_document(path: Path) -> Conversation:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise PersistenceFormatError("Conversation payload is invalid.")
            return Conversation.from_dict(payload)
        except PersistenceFormatError:
            raise
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise PersistenceFormatError(f"Unable to decode {path.name}: {exc}") from exc

    # -- Export ------------------------------------------------------------

    def export_markdown(self, conversation_id: UUID) -> str:
        """Render a conversation transcript as markdown."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return ""
        lines = [f"# {conversation.title}"]
        for message in conversation.ordered_messages():
            author = "**You**" if message.is_user else "**Kodiak**"
            lines.append(f"{author}: \n{message.content}\n")
        return "\n\n".join(lines)
