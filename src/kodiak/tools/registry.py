from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any

import httpx

from ..attachments import AttachmentRegistry, get_attachment_registry
from ..config import ToolsConfig
from ..exceptions import ToolError
from .base import Tool
from .document_analysis_tool import DocumentAnalysisTool
from .image_analysis_tool import ImageAnalysisTool
from .vision import ImageDetector
from .weather_cache import WeatherCache, get_weather_cache
from .weather_tool import WeatherTool
from .websearch_tool import WebSearchTool
from .wikipedia_tool import WikipediaTool

if TYPE_CHECKING:
    from ..session import SessionFactory

LOGGER = logging.getLogger(__name__)


class ToolRegistry:
    """Named set of tools offered to a model session.

    Names are unique. Once ``freeze()`` is called the set cannot change, which
    is how a session pins its tool list for its whole lifetime.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        self._frozen = False
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if self._frozen:
            raise ToolError("Tool set is frozen for this session.")
        if tool.name in self._tools:
            raise ToolError(f"Duplicate tool name: {tool.name!r}")
        self._tools[tool.name] = tool

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def all(self) -> list[Tool]:
        return list(self._tools.values())

    def is_empty(self) -> bool:
        return not self._tools

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def build_tools_list(self) -> list[dict[str, Any]]:
        return [tool.to_ollama_schema() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any] | None) -> str:
        tool = self._tools.get(name)
        if tool is None:
            LOGGER.warning(
                "tool.unknown",
                extra={"event": "tool.unknown", "tool": name},
            )
            return f"Unknown tool requested: {name!r}."
        return await tool.call(arguments)


@dataclass(frozen=True)
class ToolRegistryOptions:
    """Everything the enabled tool set needs to be constructed."""

    tools: ToolsConfig = field(default_factory=ToolsConfig)
    attachments: AttachmentRegistry | None = None
    session_factory: SessionFactory | None = None
    image_detectors: tuple[ImageDetector, ...] = ()
    weather_cache: WeatherCache | None = None
    http_transport: httpx.AsyncBaseTransport | None = None


def build_registry(options: ToolRegistryOptions) -> ToolRegistry:
    """Build the tool set selected by configuration."""
    cfg = options.tools
    attachments = options.attachments or get_attachment_registry()
    registry = ToolRegistry()

    if cfg.weather_enabled:
        registry.register(
            WeatherTool(
                geocoding_url=cfg.geocoding_url,
                forecast_url=cfg.forecast_url,
                timeout=cfg.http_timeout_seconds,
                cache=options.weather_cache or get_weather_cache(),
                cache_max_age_seconds=cfg.weather_cache_seconds,
                transport=options.http_transport,
            )
        )
    if cfg.image_analysis_enabled:
        registry.register(ImageAnalysisTool(attachments, options.image_detectors))
    if cfg.document_analysis_enabled:
        if options.session_factory is None:
            LOGGER.info(
                "tools.document.skipped",
                extra={"event": "tools.document.skipped", "reason": "no_session_factory"},
            )
        else:
            registry.register(DocumentAnalysisTool(options.session_factory, attachments))
    if cfg.web_search_enabled:
        registry.register(WebSearchTool())
    if cfg.wikipedia_enabled:
        registry.register(WikipediaTool())

    LOGGER.info(
        "tools.registry.built",
        extra={"event": "tools.registry.built", "tools": registry.names()},
    )
    return registry
