"""Tests for wiring configuration into a controller."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from kodiak.config import Config, PersistenceConfig, ToolsConfig, VoiceConfig
from kodiak.persistence import ConversationStore
from kodiak.runtime import build_controller, build_store, build_voice_loop
from kodiak.session import OllamaSession


class UnusedClient:
    async def chat(self, **kwargs):
        raise AssertionError("no model calls expected while wiring")


class SilentSpeech:
    def start_listening(self, on_partial, on_final, on_error) -> None:
        pass

    def stop_listening(self) -> None:
        pass

    async def speak(self, text: str) -> None:
        pass

    def stop_speaking(self) -> None:
        pass


class RuntimeTests(unittest.IsolatedAsyncioTestCase):
    async def test_controller_sessions_carry_configured_tools(self) -> None:
        config = Config(tools=ToolsConfig(wikipedia_enabled=True))
        controller = build_controller(config, client=UnusedClient(), store=ConversationStore())

        await controller.start()

        session = controller.session
        self.assertIsInstance(session, OllamaSession)
        assert isinstance(session, OllamaSession)
        assert session.tools is not None
        self.assertEqual(
            session.tools.names(),
            ["getWeather", "analyzeImage", "analyzeDocument", "wikipedia"],
        )
        self.assertTrue(session.tools.frozen)
        self.assertEqual(session.messages[0]["content"], config.ollama.system_prompt)
        await controller.close()

    async def test_each_rebuild_gets_a_fresh_tool_set(self) -> None:
        controller = build_controller(Config(), client=UnusedClient(), store=ConversationStore())
        await controller.start()
        first = controller.session
        await controller.create_conversation()
        second = controller.session
        assert isinstance(first, OllamaSession) and isinstance(second, OllamaSession)
        self.assertIsNot(first.tools, second.tools)
        await controller.close()

    def test_build_store_loads_saved_conversations(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            directory = str(Path(temp_dir) / "conversations")
            seeded = ConversationStore(enabled=True, directory=directory)
            seeded.create_conversation(title="Saved")
            seeded.save()

            config = Config(persistence=PersistenceConfig(directory=directory))
            with self.assertLogs("kodiak.runtime", level="INFO"):
                store = build_store(config)

            self.assertEqual([c.title for c in store.fetch_conversations()], ["Saved"])

    def test_voice_loop_follows_voice_section(self) -> None:
        config = Config(voice=VoiceConfig(speak_replies=True, hands_free=True))
        controller = build_controller(config, client=UnusedClient(), store=ConversationStore())
        speech = SilentSpeech()

        with self.assertLogs("kodiak.runtime", level="INFO"):
            loop = build_voice_loop(config, controller, speech)

        self.assertIs(loop.controller, controller)
        self.assertIs(loop.speech, speech)
        self.assertTrue(loop.speak_replies)
        self.assertTrue(loop.hands_free)

    def test_voice_loop_defaults_are_manual(self) -> None:
        controller = build_controller(Config(), client=UnusedClient(), store=ConversationStore())
        loop = build_voice_loop(Config(), controller, SilentSpeech())
        self.assertFalse(loop.speak_replies)
        self.assertFalse(loop.hands_free)


if __name__ == "__main__":
    unittest.main()
