"""Tests for configuration loading and validation."""

from __future__ import annotations

import tempfile
from pathlib import Path
import unittest

from kodiak.config import DEFAULT_CONFIG, DEFAULT_SYSTEM_PROMPT, Config, load_config


class ConfigTests(unittest.TestCase):
    """Validate config merge and fallback behavior."""

    def test_missing_config_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config = load_config(config_path=Path(temp_dir) / "config.toml")
            self.assertEqual(config.ollama.model, DEFAULT_CONFIG["ollama"]["model"])
            self.assertEqual(config.ollama.system_prompt, DEFAULT_SYSTEM_PROMPT)
            self.assertTrue(config.tools.weather_enabled)
            self.assertFalse(config.tools.web_search_enabled)
            self.assertFalse(config.tools.wikipedia_enabled)
            self.assertTrue(config.persistence.enabled)
            self.assertEqual(config.logging.level, "INFO")

    def test_partial_config_overrides_selected_values(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                """
[ollama]
model = "qwen2.5"
vision_model = "llava"

[tools]
web_search_enabled = true
weather_cache_seconds = 60

[voice]
hands_free = true
                """.strip(),
                encoding="utf-8",
            )
            config = load_config(config_path=config_path)
            self.assertEqual(config.ollama.model, "qwen2.5")
            self.assertEqual(config.ollama.vision_model, "llava")
            self.assertTrue(config.tools.web_search_enabled)
            self.assertEqual(config.tools.weather_cache_seconds, 60)
            self.assertTrue(config.voice.hands_free)
            self.assertFalse(config.voice.speak_replies)
            self.assertEqual(config.ollama.host, DEFAULT_CONFIG["ollama"]["host"])

    def test_invalid_values_fallback_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                """
[ollama]
timeout = -5

[logging]
level = "LOUD"
                """.strip(),
                encoding="utf-8",
            )
            with self.assertLogs("kodiak.config", level="WARNING"):
                config = load_config(config_path=config_path)
            self.assertEqual(config, Config())

    def test_remote_host_rejected_without_opt_in(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                '[ollama]\nhost = "http://10.0.0.5:11434"\n', encoding="utf-8"
            )
            config = load_config(config_path=config_path)
            self.assertEqual(config.ollama.host, "http://localhost:11434")

    def test_remote_host_allowed_with_opt_in(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                '[ollama]\nhost = "http://10.0.0.5:11434"\n\n'
                "[security]\nallow_remote_hosts = true\n",
                encoding="utf-8",
            )
            config = load_config(config_path=config_path)
            self.assertEqual(config.ollama.host, "http://10.0.0.5:11434")

    def test_unparseable_toml_falls_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text("[ollama\nmodel = ", encoding="utf-8")
            with self.assertLogs("kodiak.config", level="WARNING"):
                config = load_config(config_path=config_path)
            self.assertEqual(config.ollama.model, DEFAULT_CONFIG["ollama"]["model"])

    def test_tool_endpoints_must_be_http(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                '[tools]\ngeocoding_url = "ftp://example.com"\n', encoding="utf-8"
            )
            config = load_config(config_path=config_path)
            self.assertTrue(config.tools.geocoding_url.startswith("https://"))


if __name__ == "__main__":
    unittest.main()
