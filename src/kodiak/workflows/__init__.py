from __future__ import annotations

from .regenerate import RegenerationTarget, resolve_target
from .streaming import stream_to_completion
from .suggestions import SuggestionWorkflow, WelcomeSuggestions
from .title import TitleWorkflow, clean_title

__all__ = [
    "RegenerationTarget",
    "SuggestionWorkflow",
    "TitleWorkflow",
    "WelcomeSuggestions",
    "clean_title",
    "resolve_target",
    "stream_to_completion",
]
