"""Event names published by the turn controller."""

from __future__ import annotations

CONVERSATION_CREATED = "conversation.created"
CONVERSATION_SELECTED = "conversation.selected"
CONVERSATION_UPDATED = "conversation.updated"
CONVERSATION_DELETED = "conversation.deleted"

MESSAGE_CREATED = "message.created"
MESSAGE_UPDATED = "message.updated"
MESSAGE_DELETED = "message.deleted"

TURN_STARTED = "turn.started"
TURN_COMPLETED = "turn.completed"
TURN_FAILED = "turn.failed"
TURN_INTERRUPTED = "turn.interrupted"

SUGGESTIONS_UPDATED = "suggestions.updated"

ALL_EVENTS: frozenset[str] = frozenset(
    {
        CONVERSATION_CREATED,
        CONVERSATION_SELECTED,
        CONVERSATION_UPDATED,
        CONVERSATION_DELETED,
        MESSAGE_CREATED,
        MESSAGE_UPDATED,
        MESSAGE_DELETED,
        TURN_STARTED,
        TURN_COMPLETED,
        TURN_FAILED,
        TURN_INTERRUPTED,
        SUGGESTIONS_UPDATED,
    }
)
