"""Tests for the document analysis tool."""

from __future__ import annotations

import unittest
from uuid import uuid4

from kodiak.attachments import AttachmentRegistry
from kodiak.session import ModelResponse
from kodiak.tools.document_analysis_tool import (
    DOCUMENT_INSTRUCTIONS,
    MAX_DOCUMENT_CHARS,
    DocumentAnalysisTool,
    build_document_prompt,
)


class RecordingSession:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def respond(self, prompt: str, output_shape=None) -> ModelResponse:
        self.prompts.append(prompt)
        return ModelResponse(content=self.reply)


class RecordingFactory:
    def __init__(self, reply: str = "  Summary: short.  ") -> None:
        self.reply = reply
        self.sessions: list[RecordingSession] = []
        self.instructions: list[str] = []

    def __call__(self, instructions: str, tools=None) -> RecordingSession:
        self.instructions.append(instructions)
        session = RecordingSession(self.reply)
        self.sessions.append(session)
        return session


class DocumentAnalysisToolTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.attachments = AttachmentRegistry()
        self.factory = RecordingFactory()
        self.tool = DocumentAnalysisTool(self.factory, self.attachments)

    async def test_analyzes_given_text_on_a_fresh_session(self) -> None:
        result = await self.tool.call({"text": "Quarterly report", "metadata": "Q3"})

        self.assertEqual(result, "Summary: short.")
        self.assertEqual(self.factory.instructions, [DOCUMENT_INSTRUCTIONS])
        prompt = self.factory.sessions[0].prompts[0]
        self.assertIn("Metadata: Q3", prompt)
        self.assertTrue(prompt.endswith("Document:\nQuarterly report"))

    async def test_no_text_and_no_document(self) -> None:
        self.assertEqual(await self.tool.call({}), "No document text provided.")
        self.assertEqual(self.factory.sessions, [])

    async def test_falls_back_to_latest_document_payload(self) -> None:
        self.attachments.register_document("Meeting notes".encode("utf-8"), uuid4())
        await self.tool.call({})
        self.assertTrue(self.factory.sessions[0].prompts[0].endswith("Meeting notes"))

    async def test_prefers_derived_text_over_payload(self) -> None:
        document_id = uuid4()
        self.attachments.register_document(b"%PDF-1.7 binary", document_id)
        self.attachments.set_derived_text(document_id, "Extracted body")
        await self.tool.call({"text": "   "})
        self.assertTrue(self.factory.sessions[0].prompts[0].endswith("Extracted body"))

    def test_prompt_truncates_long_documents(self) -> None:
        prompt = build_document_prompt("x" * (MAX_DOCUMENT_CHARS + 500))
        body = prompt.split("Document:\n", 1)[1]
        self.assertEqual(len(body), MAX_DOCUMENT_CHARS)
        self.assertNotIn("Metadata:", prompt)


if __name__ == "__main__":
    unittest.main()
