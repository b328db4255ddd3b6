from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from ..session import SessionFactory

LOGGER = logging.getLogger(__name__)

SUGGESTION_INSTRUCTIONS = (
    "You are a helpful product assistant. Generate short, safe, actionable starter "
    "prompts for an AI chat app. Each suggestion should be concise and suitable for "
    "a general audience."
)

SUGGESTION_PROMPT = """Create six short and diverse starter prompts to begin a conversation in an AI assistant app.
For example a math problem like: What is 2+2
Or a question like: Who was the president of the USA during WW2
Requirements:
- 2 to 5 words each
- No punctuation at the end
- Broadly useful (learning, coding, planning, writing, explaining)
- Avoid sensitive content"""


class WelcomeSuggestions(BaseModel):
    """A compact set of short starter suggestions to begin a chat."""

    suggestion1: str = Field(default="")
    suggestion2: str = Field(default="")
    suggestion3: str = Field(default="")
    suggestion4: str = Field(default="")
    suggestion5: str = Field(default="")
    suggestion6: str = Field(default="")

    def as_list(self) -> list[str]:
        values = [
            self.suggestion1,
            self.suggestion2,
            self.suggestion3,
            self.suggestion4,
            self.suggestion5,
            self.suggestion6,
        ]
        return [v.strip() for v in values if v.strip()]


class SuggestionWorkflow:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def generate(self) -> list[str]:
        session = self._session_factory(SUGGESTION_INSTRUCTIONS, None)
        response = await session.respond(SUGGESTION_PROMPT, output_shape=WelcomeSuggestions)
        content = response.content
        if not isinstance(content, WelcomeSuggestions):
            content = WelcomeSuggestions.model_validate(content)
        suggestions = content.as_list()
        LOGGER.info(
            "suggestions.generated",
            extra={"event": "suggestions.generated", "count": len(suggestions)},
        )
        return suggestions
