"""Resolve which user prompt a regeneration replays and where its reply goes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from collections.abc import Sequence

from ..models import Message


@dataclass(frozen=True)
class RegenerationTarget:
    """``assistant`` is None when a fresh reply message has to be created."""

    user: Message
    assistant: Message | None
    next_message: Message | None = None

    def placeholder_timestamp(self) -> datetime | None:
        """Timestamp that slots a new reply between the prompt and what follows it."""
        if self.assistant is not None or self.next_message is None:
            return None
        gap = self.next_message.timestamp - self.user.timestamp
        return self.user.timestamp + gap / 2


def _index_of(messages: Sequence[Message], target: Message) -> int | None:
    for i, message in enumerate(messages):
        if message.id == target.id:
            return i
    return None


def previous_user_message(messages: Sequence[Message], assistant: Message) -> Message | None:
    index = _index_of(messages, assistant)
    if index is None:
        return None
    for message in reversed(messages[:index]):
        if message.is_user:
            return message
    return None


def following_assistant_message(messages: Sequence[Message], user: Message) -> Message | None:
    index = _index_of(messages, user)
    if index is None or index + 1 >= len(messages):
        return None
    candidate = messages[index + 1]
    return None if candidate.is_user else candidate


def resolve_target(
    messages: Sequence[Message],
    *,
    target_assistant: Message | None = None,
    target_user: Message | None = None,
) -> RegenerationTarget | None:
    """Pair the prompt with the reply slot to overwrite.

    ``messages`` must be in timestamp order. Exactly one target is expected;
    anything else, or a target of the wrong kind, resolves to None.
    """
    if (target_assistant is None) == (target_user is None):
        return None

    if target_assistant is not None:
        if target_assistant.is_user:
            return None
        user = previous_user_message(messages, target_assistant)
        if user is None:
            return None
        return RegenerationTarget(user=user, assistant=target_assistant)

    assert target_user is not None
    if not target_user.is_user:
        return None
    index = _index_of(messages, target_user)
    if index is None:
        return None
    assistant = following_assistant_message(messages, target_user)
    next_message = messages[index + 1] if index + 1 < len(messages) else None
    return RegenerationTarget(user=target_user, assistant=assistant, next_message=next_message)
