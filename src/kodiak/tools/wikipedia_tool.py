from __future__ import annotations

from pydantic import Field

from .base import ParamsSchema, Tool


class WikipediaParams(ParamsSchema):
    topic: str = Field(description="The topic to look up on Wikipedia")


class WikipediaTool(Tool):
    name = "wikipedia"
    description = "Look up an encyclopedia summary for a topic"
    params_schema = WikipediaParams

    async def execute(self, params: WikipediaParams) -> str:
        return "Wikipedia tool is coming soon."
