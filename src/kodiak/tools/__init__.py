from __future__ import annotations

from .base import ParamsSchema, Tool
from .document_analysis_tool import DocumentAnalysisTool
from .image_analysis_tool import ImageAnalysisTool
from .registry import ToolRegistry, ToolRegistryOptions, build_registry
from .vision import ImageDetector, OllamaVisionDetector, build_vision_detectors
from .weather_cache import WeatherCache, WeatherSnapshot, get_weather_cache
from .weather_tool import WeatherTool
from .websearch_tool import WebSearchTool
from .wikipedia_tool import WikipediaTool

__all__ = [
    "DocumentAnalysisTool",
    "ImageAnalysisTool",
    "ImageDetector",
    "OllamaVisionDetector",
    "ParamsSchema",
    "Tool",
    "ToolRegistry",
    "ToolRegistryOptions",
    "WeatherCache",
    "WeatherSnapshot",
    "WeatherTool",
    "WebSearchTool",
    "WikipediaTool",
    "build_registry",
    "build_vision_detectors",
    "get_weather_cache",
]
