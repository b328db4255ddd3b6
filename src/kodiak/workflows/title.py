from __future__ import annotations

import logging
import re

from ..models import MAX_TITLE_LENGTH
from ..session import SessionFactory
from .streaming import stream_to_completion

LOGGER = logging.getLogger(__name__)

TITLE_INSTRUCTIONS = (
    "You are a title generator. Create a short, descriptive title for a conversation "
    "based on the user's first message. Use 2-3 words maximum. "
    "Reply with the title only, without quotes or punctuation."
)

_TRAILING_PUNCTUATION = ".,;:!?"
_QUOTES = "\"'`“”‘’"


def clean_title(raw: str) -> str:
    """Normalize a generated title; an empty result means 'keep the current title'."""
    text = raw.strip().splitlines()[0] if raw.strip() else ""
    text = re.sub(r"^(title)\s*:\s*", "", text, flags=re.IGNORECASE)
    text = text.strip().strip(_QUOTES).strip().rstrip(_TRAILING_PUNCTUATION).strip()
    text = " ".join(text.split())
    return text[:MAX_TITLE_LENGTH].strip()


class TitleWorkflow:
    """Derive a conversation title from its first user message."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def generate(self, first_message: str) -> str:
        session = self._session_factory(TITLE_INSTRUCTIONS, None)
        raw = await stream_to_completion(session, f"Title for: {first_message.strip()}")
        title = clean_title(raw)
        LOGGER.info(
            "title.generated",
            extra={"event": "title.generated", "empty": not title},
        )
        return title
