"""Kodiak chat core: conversation store, model sessions, tools and the turn controller."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .attachments import AttachmentRegistry
    from .config import Config, ensure_config_dir, load_config
    from .controller import ComposerDraft, TurnController
    from .exceptions import (
        ConfigValidationError,
        KodiakError,
        ModelConnectionError,
        ModelNotFoundError,
        ModelStreamingError,
        PersistenceError,
        ToolError,
    )
    from .models import Attachment, AttachmentKind, Conversation, Message
    from .persistence import ConversationStore
    from .runtime import build_controller
    from .session import OllamaSession, ResponseSnapshot
    from .state import StateManager, TurnState

_EXPORTS: dict[str, str] = {
    "Attachment": "models",
    "AttachmentKind": "models",
    "AttachmentRegistry": "attachments",
    "ComposerDraft": "controller",
    "Config": "config",
    "ConfigValidationError": "exceptions",
    "Conversation": "models",
    "ConversationStore": "persistence",
    "KodiakError": "exceptions",
    "Message": "models",
    "ModelConnectionError": "exceptions",
    "ModelNotFoundError": "exceptions",
    "ModelStreamingError": "exceptions",
    "OllamaSession": "session",
    "PersistenceError": "exceptions",
    "ResponseSnapshot": "session",
    "StateManager": "state",
    "ToolError": "exceptions",
    "TurnController": "controller",
    "TurnState": "state",
    "build_controller": "runtime",
    "ensure_config_dir": "config",
    "load_config": "config",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import symbols so importing the package stays cheap."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(import_module(f".{module_name}", __name__), name)
