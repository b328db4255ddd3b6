"""Bounded model-side transcript with deterministic context trimming."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .models import Message

# Wire-format chat entry sent to the model runtime.
Entry = dict[str, Any]


def estimate_tokens(role: str, content: str) -> int:
    """Cheap, deterministic token estimate for a single entry."""
    role_cost = 2 if role else 0
    return role_cost + len(content) // 4 + len(content.split()) + 2


class Transcript:
    """The conversation history a model session replays on every request.

    System instructions are pinned at the front and never trimmed. Older
    turns fall off first, both by count (``max_history_messages``) and, when a
    request is built, by estimated tokens (``max_context_tokens``).
    """

    def __init__(
        self,
        instructions: str = "",
        max_history_messages: int = 200,
        max_context_tokens: int = 4096,
    ) -> None:
        self.max_history_messages = max(1, max_history_messages)
        self.max_context_tokens = max(1, max_context_tokens)
        self._system: list[Entry] = []
        if instructions.strip():
            self._system.append(self._entry("system", instructions.strip()))
        self._turns: list[Entry] = []

    @staticmethod
    def _entry(role: str, content: str) -> Entry:
        return {
            "role": role,
            "content": content,
            "_tokens": estimate_tokens(role, content),
        }

    @staticmethod
    def _public(entry: Entry) -> Entry:
        return {k: v for k, v in entry.items() if not k.startswith("_")}

    @property
    def entries(self) -> list[Entry]:
        """Copy of the full transcript without internal bookkeeping keys."""
        return [self._public(e) for e in self._system + self._turns]

    @property
    def turn_count(self) -> int:
        return len(self._turns)

    def clear(self) -> None:
        self._turns = []

    def append(self, role: str, content: str) -> None:
        normalized_role = role.strip().lower()
        if not normalized_role:
            return
        self._turns.append(self._entry(normalized_role, content.strip()))
        self._trim_by_history_limit()

    def rollback_last_user(self) -> None:
        """Drop a trailing user entry left behind by a failed request."""
        if self._turns and self._turns[-1]["role"] == "user":
            self._turns.pop()

    def seed(self, messages: Iterable[Message]) -> None:
        """Replace the turns with stored messages, skipping empty placeholders."""
        self._turns = [
            self._entry(m.role, m.content.strip())
            for m in messages
            if m.content.strip()
        ]
        self._trim_by_history_limit()

    def estimated_tokens(self) -> int:
        return max(1, sum(e["_tokens"] for e in self._system + self._turns))

    def build_context(self, max_context_tokens: int | None = None) -> list[Entry]:
        """Entries to send, newest turns first to survive the token budget."""
        limit = max(1, max_context_tokens or self.max_context_tokens)
        system_cost = sum(e["_tokens"] for e in self._system)
        budget = max(0, limit - system_cost)

        kept_start = len(self._turns)
        cumulative = 0
        for i in range(len(self._turns) - 1, -1, -1):
            cost = self._turns[i]["_tokens"]
            if cumulative + cost > budget:
                break
            cumulative += cost
            kept_start = i

        # The newest entry is always sent, even if it alone exceeds the budget.
        if kept_start == len(self._turns) and self._turns:
            kept_start = len(self._turns) - 1
        return [self._public(e) for e in self._system + self._turns[kept_start:]]

    def _trim_by_history_limit(self) -> None:
        max_turns = max(0, self.max_history_messages - len(self._system))
        if len(self._turns) > max_turns:
            self._turns = self._turns[-max_turns:] if max_turns else []
