"""Image detectors backed by an Ollama vision model."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

LOGGER = logging.getLogger(__name__)

OBJECTS_PROMPT = (
    "List the distinct objects visible in this image, one short label per line. "
    "Reply with the labels only."
)
TEXT_PROMPT = (
    "Transcribe any readable text in this image exactly as written. "
    "Reply with an empty message if there is no text."
)
BARCODE_PROMPT = (
    "If this image contains barcodes or QR codes, write the decoded value of each "
    "one per line. Reply with an empty message if there are none."
)

_EMPTY_REPLIES = {"none", "no text", "n/a", "nothing", "no barcodes"}


@runtime_checkable
class ImageDetector(Protocol):
    """Produces one section of an image analysis.

    ``label`` names the section; ``block`` is true when results read as one
    passage of text rather than a bulleted list.
    """

    label: str
    block: bool

    async def detect(self, image: bytes) -> list[str]: ...


def _response_text(response: Any) -> str:
    message = getattr(response, "message", None)
    if message is not None:
        content = getattr(message, "content", None)
        if isinstance(content, str):
            return content
    if isinstance(response, dict):
        message = response.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
    return ""


def parse_lines(text: str) -> list[str]:
    """Split a model reply into clean items, dropping bullets and placeholders."""
    items: list[str] = []
    for raw in text.splitlines():
        line = raw.strip().lstrip("-*•").strip()
        if not line or line.lower().rstrip(".") in _EMPTY_REPLIES:
            continue
        if line not in items:
            items.append(line)
    return items


class OllamaVisionDetector:
    """Ask a vision-capable model one question about an image."""

    def __init__(
        self,
        client: Any,
        model: str,
        *,
        label: str,
        prompt: str,
        block: bool = False,
    ) -> None:
        self._client = client
        self.model = model
        self.label = label
        self.prompt = prompt
        self.block = block

    async def detect(self, image: bytes) -> list[str]:
        response = await self._client.chat(
            model=self.model,
            messages=[{"role": "user", "content": self.prompt, "images": [image]}],
            stream=False,
        )
        text = _response_text(response).strip()
        if self.block:
            if not text or text.lower().rstrip(".") in _EMPTY_REPLIES:
                return []
            return [text]
        return parse_lines(text)


def build_vision_detectors(client: Any, model: str) -> tuple[ImageDetector, ...]:
    """Object labels, recognized text and barcodes, in reporting order."""
    if not model:
        return ()
    return (
        OllamaVisionDetector(client, model, label="Detected objects", prompt=OBJECTS_PROMPT),
        OllamaVisionDetector(
            client, model, label="Recognized text", prompt=TEXT_PROMPT, block=True
        ),
        OllamaVisionDetector(client, model, label="Barcodes", prompt=BARCODE_PROMPT),
    )
