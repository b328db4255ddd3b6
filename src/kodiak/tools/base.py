from __future__ import annotations

from abc import ABC, abstractmethod
from functools import cached_property
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

LOGGER = logging.getLogger(__name__)


class ParamsSchema(BaseModel):
    """Base class for all tool argument schemas."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Tool(ABC):
    """
    Abstract base class for the tools a model session may call mid-turn.

    Subclasses set:
        name          – unique tool name within an enabled set
        description   – shown to the model to decide when to call the tool
        params_schema – a ParamsSchema subclass describing the arguments

    ``call()`` is the tool boundary: argument validation failures and any
    exception raised by ``execute()`` come back as plain text, so a failing
    tool never aborts the turn that invoked it.
    """

    name: str
    description: str = ""
    params_schema: type[ParamsSchema]

    @abstractmethod
    async def execute(self, params: Any) -> str:  # pragma: no cover - interface only
        ...

    @cached_property
    def _schema_cache(self) -> dict[str, Any]:
        raw_schema = self.params_schema.model_json_schema(by_alias=True)
        return self._clean_pydantic_schema(raw_schema)

    @staticmethod
    def _clean_pydantic_schema(schema: dict[str, Any]) -> dict[str, Any]:
        """Remove Pydantic-specific fields that the model runtime doesn't need."""
        cleaned = {
            k: v
            for k, v in schema.items()
            if k not in ("$defs", "title", "$schema", "definitions")
        }
        cleaned.setdefault("type", "object")
        cleaned.setdefault("properties", {})
        cleaned.setdefault("required", [])
        for prop in cleaned["properties"].values():
            if isinstance(prop, dict):
                prop.pop("title", None)
        return cleaned

    def to_ollama_schema(self) -> dict[str, Any]:
        """Return the function-tool schema sent alongside chat requests."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self._schema_cache,
            },
        }

    def format_validation_error(self, error: ValidationError) -> str:
        """Override to give the model a friendlier hint about bad arguments."""
        fields = ", ".join(
            ".".join(str(part) for part in item.get("loc", ())) or "arguments"
            for item in error.errors()
        )
        return f"Invalid arguments for {self.name}: {fields}."

    async def call(self, raw_args: dict[str, Any] | None) -> str:
        """Validate arguments, run the tool and always return text."""
        try:
            params = self.params_schema.model_validate(raw_args or {})
        except ValidationError as exc:
            LOGGER.info(
                "tool.arguments.invalid",
                extra={"event": "tool.arguments.invalid", "tool": self.name},
            )
            return self.format_validation_error(exc)

        try:
            return str(await self.execute(params))
        except Exception as exc:  # noqa: BLE001 - tool failures are conversational.
            LOGGER.warning(
                "tool.failed",
                extra={
                    "event": "tool.failed",
                    "tool": self.name,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return f"The {self.name} tool could not complete the request: {exc}"
