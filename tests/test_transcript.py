"""Tests for the bounded model transcript."""

from __future__ import annotations

import unittest
from uuid import uuid4

from kodiak.models import Message
from kodiak.transcript import Transcript, estimate_tokens


class TranscriptTests(unittest.TestCase):
    def test_system_instructions_pinned_first(self) -> None:
        transcript = Transcript("Be brief.")
        transcript.append("user", "Hi")
        entries = transcript.entries
        self.assertEqual(entries[0], {"role": "system", "content": "Be brief."})
        self.assertEqual(entries[1], {"role": "user", "content": "Hi"})

    def test_history_limit_drops_oldest_turns(self) -> None:
        transcript = Transcript("sys", max_history_messages=3)
        for i in range(5):
            transcript.append("user", f"m{i}")
        contents = [e["content"] for e in transcript.entries]
        self.assertEqual(contents, ["sys", "m3", "m4"])

    def test_build_context_keeps_newest_within_budget(self) -> None:
        transcript = Transcript("", max_context_tokens=10_000)
        for i in range(20):
            transcript.append("user", "word " * 50 + str(i))
        budget = estimate_tokens("user", "word " * 50 + "19") * 2
        context = transcript.build_context(max_context_tokens=budget)
        self.assertEqual(len(context), 2)
        self.assertTrue(context[-1]["content"].endswith("19"))

    def test_newest_entry_always_sent(self) -> None:
        transcript = Transcript("", max_context_tokens=1)
        transcript.append("user", "a very long prompt " * 100)
        self.assertEqual(len(transcript.build_context()), 1)

    def test_rollback_only_removes_trailing_user(self) -> None:
        transcript = Transcript("")
        transcript.append("user", "q")
        transcript.append("assistant", "a")
        transcript.rollback_last_user()
        self.assertEqual(transcript.turn_count, 2)
        transcript.append("user", "q2")
        transcript.rollback_last_user()
        self.assertEqual(transcript.turn_count, 2)

    def test_seed_skips_empty_placeholders(self) -> None:
        conversation_id = uuid4()
        transcript = Transcript("sys")
        transcript.append("user", "stale")
        transcript.seed(
            [
                Message(conversation_id=conversation_id, content="Hello", is_user=True),
                Message(conversation_id=conversation_id, content="", is_user=False),
            ]
        )
        self.assertEqual(
            transcript.entries,
            [{"role": "system", "content": "sys"}, {"role": "user", "content": "Hello"}],
        )


if __name__ == "__main__":
    unittest.main()
