from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import Field

from ..attachments import AttachmentRegistry
from .base import ParamsSchema, Tool

if TYPE_CHECKING:
    from ..session import SessionFactory

LOGGER = logging.getLogger(__name__)

MAX_DOCUMENT_CHARS = 8000

DOCUMENT_INSTRUCTIONS = (
    "You analyze documents. Be accurate and concise. "
    "Never invent content that is not in the document."
)


class DocumentAnalysisParams(ParamsSchema):
    text: str | None = Field(
        default=None,
        description="Document text to analyze. Omit to use the most recent attached document.",
    )
    metadata: str | None = Field(
        default=None,
        description="Optional metadata such as title or author",
    )


def build_document_prompt(text: str, metadata: str | None = None) -> str:
    prompt = (
        "Analyze the following document. Provide:\n"
        "1. A short summary\n"
        "2. Five key points as bullets\n"
        "3. Notable entities (people, organizations, places, dates)\n"
        "4. A brief table of contents\n\n"
    )
    if metadata and metadata.strip():
        prompt += f"Metadata: {metadata.strip()}\n\n"
    return prompt + f"Document:\n{text[:MAX_DOCUMENT_CHARS]}"


class DocumentAnalysisTool(Tool):
    name = "analyzeDocument"
    description = (
        "Summarize a document and extract its key points, entities and structure. "
        "Uses the most recent attached document when no text is given."
    )
    params_schema = DocumentAnalysisParams

    def __init__(
        self,
        session_factory: SessionFactory,
        attachments: AttachmentRegistry,
    ) -> None:
        self._session_factory = session_factory
        self.attachments = attachments

    def _latest_document_text(self) -> str:
        document_id = self.attachments.latest_document_id
        if document_id is None:
            return ""
        derived = self.attachments.derived_text(document_id)
        if derived:
            return derived
        payload = self.attachments.payload(document_id)
        if payload is None:
            return ""
        return payload.decode("utf-8", errors="ignore")

    async def execute(self, params: DocumentAnalysisParams) -> str:
        text = (params.text or "").strip() or self._latest_document_text().strip()
        if not text:
            return "No document text provided."

        session = self._session_factory(DOCUMENT_INSTRUCTIONS, None)
        response = await session.respond(build_document_prompt(text, params.metadata))
        LOGGER.info(
            "tool.document.analyzed",
            extra={"event": "tool.document.analyzed", "chars": min(len(text), MAX_DOCUMENT_CHARS)},
        )
        return str(response.content).strip()
