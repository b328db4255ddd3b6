"""Async publish/subscribe bus used to notify the UI layer of state changes.

Usage:
    bus = EventBus()

    async def on_message_updated(event):
        render(event.data["message_id"], event.data["content"])

    bus.subscribe(MESSAGE_UPDATED, on_message_updated)
    await bus.publish(MESSAGE_UPDATED, {"message_id": ..., "content": ...})
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


@dataclass
class Event:
    """Event data container."""

    name: str
    data: dict[str, Any]
    source: str | None = None


class EventBus:
    """Explicit notification channel between the turn controller and its observers.

    Handlers may be sync or async. A failing handler is logged and skipped so a
    broken observer can never abort a turn.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[[Event], Any]]] = {}

    def subscribe(self, event_name: str, handler: Callable[[Event], Any]) -> None:
        """Subscribe ``handler`` to ``event_name`` ("*" receives every event)."""
        self._subscribers.setdefault(event_name, []).append(handler)
        LOGGER.debug("Subscribed to event: %s", event_name)

    def unsubscribe(self, event_name: str, handler: Callable[[Event], Any]) -> None:
        """Remove a previously subscribed handler; unknown handlers are ignored."""
        handlers = self._subscribers.get(event_name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        LOGGER.debug("Unsubscribed from event: %s", event_name)

    def subscriber_count(self, event_name: str) -> int:
        return len(self._subscribers.get(event_name, []))

    async def publish(
        self, event_name: str, data: dict[str, Any], source: str | None = None
    ) -> None:
        """Publish an event to its subscribers and to wildcard subscribers."""
        event = Event(name=event_name, data=data, source=source)
        handlers = list(self._subscribers.get(event_name, [])) + list(
            self._subscribers.get("*", [])
        )
        if not handlers:
            return

        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:  # noqa: BLE001 - observers must not break turns.
                LOGGER.error(
                    "events.handler.failed",
                    extra={
                        "event": "events.handler.failed",
                        "event_name": event_name,
                        "error": str(exc),
                    },
                )

    def clear(self, event_name: str | None = None) -> None:
        """Clear subscribers for one event, or all of them."""
        if event_name:
            self._subscribers.pop(event_name, None)
        else:
            self._subscribers.clear()
