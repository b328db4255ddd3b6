"""Tests for structured logging behavior."""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
import unittest

import structlog

from kodiak.logging_utils import configure_logging


def _record(name: str, msg: str = "ok", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name=name,
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class ConfigureLoggingTests(unittest.TestCase):
    """Validate configure_logging() handler setup behavior."""

    def setUp(self) -> None:
        # Preserve root logger state so tests do not pollute each other.
        root = logging.getLogger()
        self._original_level = root.level
        self._original_handlers = list(root.handlers)

    def tearDown(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers:
            if handler not in self._original_handlers:
                handler.close()
        root.setLevel(self._original_level)
        root.handlers.clear()
        root.handlers.extend(self._original_handlers)

    def _stream_handlers(self) -> list[logging.Handler]:
        return [
            h
            for h in logging.getLogger().handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, logging.FileHandler)
        ]

    def test_structured_output_is_json_with_extra_fields(self) -> None:
        configure_logging({"level": "DEBUG", "structured": True, "log_to_file": False})
        handler = self._stream_handlers()[0]
        self.assertIsInstance(handler.formatter, structlog.stdlib.ProcessorFormatter)

        line = handler.format(
            _record(
                "kodiak.controller",
                "turn.state.transition",
                event="turn.state.transition",
                from_state="IDLE",
                to_state="STREAMING",
            )
        )
        data = json.loads(line)
        self.assertEqual(data["event"], "turn.state.transition")
        self.assertEqual(data["from_state"], "IDLE")
        self.assertEqual(data["to_state"], "STREAMING")
        self.assertEqual(data["logger"], "kodiak.controller")

    def test_structured_output_includes_bound_context(self) -> None:
        configure_logging({"level": "DEBUG", "structured": True, "log_to_file": False})
        handler = self._stream_handlers()[0]

        with structlog.contextvars.bound_contextvars(conversation_id="c-1"):
            line = handler.format(_record("kodiak.session", "session.tool.call"))

        self.assertEqual(json.loads(line)["conversation_id"], "c-1")

    def test_plain_formatter_when_not_structured(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False, "log_to_file": False})
        formatters = [h.formatter for h in logging.getLogger().handlers]
        self.assertFalse(
            any(isinstance(f, structlog.stdlib.ProcessorFormatter) for f in formatters)
        )

    def test_sets_root_level(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False})
        self.assertEqual(logging.getLogger().level, logging.DEBUG)

    def test_noisy_loggers_set_to_warning(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False})
        for name in ("httpx", "httpcore", "ollama"):
            self.assertEqual(logging.getLogger(name).level, logging.WARNING)

    def test_file_handler_created(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp) / "logs" / "kodiak.log"
            configure_logging(
                {
                    "level": "DEBUG",
                    "structured": False,
                    "log_to_file": True,
                    "log_file_path": str(log_path),
                }
            )
            file_handlers = [
                h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
            ]
            self.assertEqual(len(file_handlers), 1)
            self.assertTrue(log_path.exists())
            for handler in file_handlers:
                handler.close()
                logging.getLogger().removeHandler(handler)

    def test_stderr_handler_filters_to_kodiak(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False})
        handler = self._stream_handlers()[0]
        self.assertTrue(handler.filter(_record("kodiak.session")))
        self.assertFalse(handler.filter(_record("httpx")))


if __name__ == "__main__":
    unittest.main()
