"""Explicit notification channel between the chat core and the UI layer."""

from .bus import Event, EventBus

__all__ = ["EventBus", "Event"]
