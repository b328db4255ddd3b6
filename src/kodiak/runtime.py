"""Wire configuration into a ready-to-start turn controller."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .attachments import get_attachment_registry
from .config import Config
from .controller import TurnController
from .events import EventBus
from .persistence import ConversationStore
from .session import build_session_factory, create_client
from .tools.registry import ToolRegistry, ToolRegistryOptions, build_registry
from .tools.vision import build_vision_detectors
from .voice import SpeechService, VoiceLoop

LOGGER = logging.getLogger(__name__)


def build_store(config: Config) -> ConversationStore:
    store = ConversationStore(
        enabled=config.persistence.enabled,
        directory=config.persistence.directory,
    )
    loaded = store.load()
    LOGGER.info(
        "store.loaded",
        extra={"event": "store.loaded", "conversations": loaded},
    )
    return store


def build_controller(
    config: Config,
    *,
    client: Any | None = None,
    store: ConversationStore | None = None,
    event_bus: EventBus | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> TurnController:
    """Assemble store, sessions and the configured tool set around one controller."""
    ollama_client = client if client is not None else create_client(config.ollama)
    session_factory = build_session_factory(config.ollama, ollama_client)
    attachments = get_attachment_registry()
    options = ToolRegistryOptions(
        tools=config.tools,
        attachments=attachments,
        session_factory=session_factory,
        image_detectors=build_vision_detectors(ollama_client, config.ollama.vision_model),
        http_transport=http_transport,
    )

    def tool_factory() -> ToolRegistry:
        return build_registry(options)

    return TurnController(
        store if store is not None else build_store(config),
        session_factory,
        tool_factory=tool_factory,
        attachments=attachments,
        event_bus=event_bus,
        system_prompt=config.ollama.system_prompt,
    )


def build_voice_loop(
    config: Config, controller: TurnController, speech: SpeechService
) -> VoiceLoop:
    """Attach a platform speech service to ``controller`` using the [voice] preferences."""
    loop = VoiceLoop(
        controller,
        speech,
        speak_replies=config.voice.speak_replies,
        hands_free=config.voice.hands_free,
    )
    LOGGER.info(
        "voice.configured",
        extra={
            "event": "voice.configured",
            "speak_replies": loop.speak_replies,
            "hands_free": loop.hands_free,
        },
    )
    return loop
