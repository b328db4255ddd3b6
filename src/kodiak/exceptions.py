"""Domain exception hierarchy for the Kodiak chat core."""

from __future__ import annotations


class KodiakError(RuntimeError):
    """Base class for all domain-level chat errors."""


class ModelConnectionError(KodiakError):
    """Raised when the model host cannot be reached."""


class ModelNotFoundError(KodiakError):
    """Raised when the configured model is unavailable."""


class ModelStreamingError(KodiakError):
    """Raised when streaming fails for non-connectivity reasons."""


class ConfigValidationError(KodiakError):
    """Raised when configuration cannot be validated safely."""


class ToolError(KodiakError):
    """Raised when a tool set violates its registration contract."""


class PersistenceError(KodiakError):
    """Raised when conversation persistence operations fail."""


class PersistenceFormatError(PersistenceError):
    """Raised when a persisted payload cannot be decoded safely."""
