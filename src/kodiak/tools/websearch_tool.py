from __future__ import annotations

from pydantic import Field

from .base import ParamsSchema, Tool


class WebSearchParams(ParamsSchema):
    query: str = Field(description="What to search the web for")


class WebSearchTool(Tool):
    name = "webSearch"
    description = "Search the web for up-to-date information"
    params_schema = WebSearchParams

    async def execute(self, params: WebSearchParams) -> str:
        return "Web Search is coming soon."
