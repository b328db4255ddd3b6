"""Tests for title, suggestion, regeneration and streaming helpers."""

from __future__ import annotations

from datetime import timedelta
import unittest
from uuid import uuid4

from kodiak.models import Message, utc_now
from kodiak.session import ModelResponse, ResponseSnapshot
from kodiak.workflows import (
    SuggestionWorkflow,
    TitleWorkflow,
    WelcomeSuggestions,
    clean_title,
    resolve_target,
    stream_to_completion,
)
from kodiak.workflows.suggestions import SUGGESTION_INSTRUCTIONS
from kodiak.workflows.title import TITLE_INSTRUCTIONS


class ScriptedSession:
    def __init__(self, snapshots: list[str] | None = None, reply: object = None) -> None:
        self.snapshots = snapshots or []
        self.reply = reply
        self.prompts: list[str] = []
        self.output_shapes: list[object] = []

    async def stream_response(self, prompt: str):
        self.prompts.append(prompt)
        for snapshot in self.snapshots:
            yield ResponseSnapshot(snapshot)

    async def respond(self, prompt: str, output_shape=None) -> ModelResponse:
        self.prompts.append(prompt)
        self.output_shapes.append(output_shape)
        return ModelResponse(content=self.reply)

    def load_history(self, messages) -> None:
        pass


class ScriptedFactory:
    def __init__(self, session: ScriptedSession) -> None:
        self.session = session
        self.instructions: list[str] = []

    def __call__(self, instructions: str, tools=None) -> ScriptedSession:
        self.instructions.append(instructions)
        return self.session


class StreamToCompletionTests(unittest.IsolatedAsyncioTestCase):
    async def test_returns_last_snapshot_and_reports_each(self) -> None:
        seen: list[str] = []

        async def on_snapshot(text: str) -> None:
            seen.append(text)

        session = ScriptedSession(["H", "He", "Hello there"])
        result = await stream_to_completion(session, "Hello", on_snapshot)

        self.assertEqual(result, "Hello there")
        self.assertEqual(seen, ["H", "He", "Hello there"])

    async def test_empty_stream_returns_empty_text(self) -> None:
        self.assertEqual(await stream_to_completion(ScriptedSession([]), "Hi"), "")


class CleanTitleTests(unittest.TestCase):
    def test_strips_prefix_quotes_and_punctuation(self) -> None:
        self.assertEqual(clean_title('Title: "Trip Planning."'), "Trip Planning")

    def test_uses_first_line_and_collapses_whitespace(self) -> None:
        self.assertEqual(clean_title("  Rust   Lifetimes \nbecause you asked"), "Rust Lifetimes")

    def test_caps_length(self) -> None:
        self.assertEqual(len(clean_title("word " * 30)), 49)
        self.assertLessEqual(len(clean_title("x" * 80)), 50)

    def test_empty_reply(self) -> None:
        self.assertEqual(clean_title("   "), "")
        self.assertEqual(clean_title('""'), "")


class TitleWorkflowTests(unittest.IsolatedAsyncioTestCase):
    async def test_generates_clean_title_on_its_own_session(self) -> None:
        session = ScriptedSession(["Wea", "Weather Check."])
        factory = ScriptedFactory(session)

        title = await TitleWorkflow(factory).generate("  what's the weather in Oslo  ")

        self.assertEqual(title, "Weather Check")
        self.assertEqual(factory.instructions, [TITLE_INSTRUCTIONS])
        self.assertEqual(session.prompts, ["Title for: what's the weather in Oslo"])


class SuggestionWorkflowTests(unittest.IsolatedAsyncioTestCase):
    async def test_requests_structured_suggestions(self) -> None:
        session = ScriptedSession(
            reply=WelcomeSuggestions(
                suggestion1="Explain recursion",
                suggestion2="  ",
                suggestion3="Plan a trip",
            )
        )
        factory = ScriptedFactory(session)

        suggestions = await SuggestionWorkflow(factory).generate()

        self.assertEqual(suggestions, ["Explain recursion", "Plan a trip"])
        self.assertEqual(factory.instructions, [SUGGESTION_INSTRUCTIONS])
        self.assertIs(session.output_shapes[0], WelcomeSuggestions)

    async def test_accepts_plain_mapping_reply(self) -> None:
        session = ScriptedSession(reply={"suggestion1": "What is 2+2"})
        self.assertEqual(
            await SuggestionWorkflow(ScriptedFactory(session)).generate(), ["What is 2+2"]
        )


def _thread() -> list[Message]:
    conversation_id = uuid4()
    start = utc_now()
    specs = [("Hi", True), ("Hello!", False), ("Weather?", True), ("Sunny.", False), ("Thanks", True)]
    return [
        Message(
            conversation_id=conversation_id,
            content=content,
            is_user=is_user,
            timestamp=start + timedelta(seconds=10 * i),
        )
        for i, (content, is_user) in enumerate(specs)
    ]


class ResolveTargetTests(unittest.TestCase):
    def test_assistant_target_pairs_with_previous_prompt(self) -> None:
        messages = _thread()
        target = resolve_target(messages, target_assistant=messages[3])
        assert target is not None
        self.assertIs(target.user, messages[2])
        self.assertIs(target.assistant, messages[3])
        self.assertIsNone(target.placeholder_timestamp())

    def test_user_target_with_following_reply(self) -> None:
        messages = _thread()
        target = resolve_target(messages, target_user=messages[0])
        assert target is not None
        self.assertIs(target.assistant, messages[1])

    def test_user_target_without_reply_gets_midpoint_slot(self) -> None:
        messages = _thread()
        del messages[3]
        target = resolve_target(messages, target_user=messages[2])
        assert target is not None
        self.assertIsNone(target.assistant)
        self.assertIs(target.next_message, messages[3])
        self.assertEqual(
            target.placeholder_timestamp(), messages[2].timestamp + timedelta(seconds=10)
        )

    def test_last_user_message_without_reply(self) -> None:
        messages = _thread()
        target = resolve_target(messages, target_user=messages[4])
        assert target is not None
        self.assertIsNone(target.assistant)
        self.assertIsNone(target.placeholder_timestamp())

    def test_requires_exactly_one_target(self) -> None:
        messages = _thread()
        self.assertIsNone(resolve_target(messages))
        self.assertIsNone(
            resolve_target(messages, target_assistant=messages[1], target_user=messages[0])
        )

    def test_rejects_targets_of_the_wrong_kind(self) -> None:
        messages = _thread()
        self.assertIsNone(resolve_target(messages, target_assistant=messages[0]))
        self.assertIsNone(resolve_target(messages, target_user=messages[1]))

    def test_rejects_messages_outside_the_thread(self) -> None:
        messages = _thread()
        stranger = Message(conversation_id=uuid4(), content="?", is_user=True)
        self.assertIsNone(resolve_target(messages, target_user=stranger))

    def test_assistant_without_prompt(self) -> None:
        messages = _thread()[1:]
        self.assertIsNone(resolve_target(messages, target_assistant=messages[0]))


if __name__ == "__main__":
    unittest.main()
