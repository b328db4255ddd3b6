"""Ollama-backed model session: cumulative streaming, tool loop and structured replies."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
import json
import logging
import re
from typing import Any, Protocol

import httpx
from ollama import AsyncClient, ResponseError
from pydantic import BaseModel, ValidationError

from .config import OllamaConfig
from .exceptions import (
    KodiakError,
    ModelConnectionError,
    ModelNotFoundError,
    ModelStreamingError,
)
from .models import Message
from .tools.registry import ToolRegistry
from .transcript import Transcript

LOGGER = logging.getLogger(__name__)

TOOL_LIMIT_REPLY = "I ran out of tool steps before I could finish answering."


@dataclass(frozen=True)
class ResponseSnapshot:
    """Everything the model has produced so far for the current turn."""

    content: str


@dataclass(frozen=True)
class ModelResponse:
    """A complete single-shot reply; ``content`` is a model instance for structured requests."""

    content: Any


@dataclass
class _ToolCall:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    index: int | None = None


class ModelSession(Protocol):
    """What the turn controller and workflows need from a model session."""

    def stream_response(self, prompt: str) -> AsyncIterator[ResponseSnapshot]: ...

    async def respond(
        self, prompt: str, output_shape: type[BaseModel] | None = None
    ) -> ModelResponse: ...

    def load_history(self, messages: Iterable[Message]) -> None: ...


SessionFactory = Callable[[str, "ToolRegistry | None"], ModelSession]


class OllamaSession:
    """Stateful model session that replays a bounded transcript on every request.

    ``stream_response`` yields cumulative snapshots: each value is the whole
    visible reply so far, never a delta. When the model asks for tools, the
    session runs them through its frozen registry and keeps streaming; tool
    traffic stays inside the request context and never reaches the transcript.
    """

    def __init__(
        self,
        client: Any,
        model: str,
        instructions: str = "",
        tools: ToolRegistry | None = None,
        *,
        host: str = "",
        retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        max_history_messages: int = 200,
        max_context_tokens: int = 4096,
        max_tool_iterations: int = 10,
    ) -> None:
        self._client = client
        self.model = model
        self.host = host
        self.retries = retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.max_context_tokens = max_context_tokens
        self.max_tool_iterations = max(1, max_tool_iterations)
        self.tools = tools.freeze() if tools is not None else None
        self.transcript = Transcript(
            instructions=instructions,
            max_history_messages=max_history_messages,
            max_context_tokens=max_context_tokens,
        )

    @property
    def messages(self) -> list[dict[str, Any]]:
        return self.transcript.entries

    def load_history(self, messages: Iterable[Message]) -> None:
        """Seed the transcript from stored messages of an existing conversation."""
        self.transcript.seed(messages)

    # -- Chunk parsing -----------------------------------------------------

    @staticmethod
    def _extract_from_chunk(chunk: Any, name: str) -> Any:
        """Read ``message.<name>`` from an SDK object or a plain dict payload."""
        message_obj = getattr(chunk, "message", None)
        if message_obj is not None and not isinstance(message_obj, dict):
            value = getattr(message_obj, name, None)
            if value is not None:
                return value

        if hasattr(chunk, "model_dump"):
            chunk = chunk.model_dump()

        if isinstance(chunk, dict):
            message = chunk.get("message")
            if isinstance(message, dict):
                value = message.get(name)
                if value is not None:
                    return value
            return chunk.get(name)
        return None

    @classmethod
    def _extract_text(cls, chunk: Any) -> str:
        value = cls._extract_from_chunk(chunk, "content")
        return value if isinstance(value, str) else ""

    @classmethod
    def _extract_tool_calls(cls, chunk: Any) -> list[_ToolCall]:
        raw = cls._extract_from_chunk(chunk, "tool_calls")
        if not isinstance(raw, list):
            return []
        calls = [cls._parse_tool_call(tc) for tc in raw]
        return [call for call in calls if call.name]

    @staticmethod
    def _parse_tool_call(tc: Any) -> _ToolCall:
        fn = getattr(tc, "function", None)
        if fn is None and isinstance(tc, dict):
            fn = tc.get("function")
        if fn is None:
            return _ToolCall(name="")

        if isinstance(fn, dict):
            name, args, raw_index = fn.get("name"), fn.get("arguments"), fn.get("index")
        else:
            name = getattr(fn, "name", None)
            args = getattr(fn, "arguments", None)
            raw_index = getattr(fn, "index", None)

        if isinstance(args, str):
            try:
                args = json.loads(args)
            except ValueError:
                args = {}
        if not isinstance(args, dict):
            args = {}
        try:
            index = int(raw_index) if raw_index is not None else None
        except (TypeError, ValueError):
            index = None
        return _ToolCall(name=str(name or ""), arguments=dict(args), index=index)

    @staticmethod
    def _parse_inline_tool_call(content: str, allowed_names: set[str]) -> list[_ToolCall]:
        """Recover a tool call some models emit as a JSON object in plain text."""
        text = (content or "").strip()
        if not text:
            return []

        match = re.search(r"```json\s*(\{[\s\S]*?\})\s*```", text, re.IGNORECASE)
        candidate = match.group(1) if match else text
        try:
            parsed = json.loads(candidate)
        except ValueError:
            return []

        def _as_call(obj: Any) -> list[_ToolCall]:
            if not isinstance(obj, dict):
                return []
            fn = obj["function"] if isinstance(obj.get("function"), dict) else obj
            name = str(fn.get("name", ""))
            if not name or name not in allowed_names:
                return []
            args = fn.get("arguments", fn.get("parameters", {}))
            return [_ToolCall(name=name, arguments=args if isinstance(args, dict) else {})]

        if isinstance(parsed, list):
            for item in parsed:
                calls = _as_call(item)
                if calls:
                    return calls
            return []
        return _as_call(parsed)

    # -- Errors ------------------------------------------------------------

    def _map_exception(self, exc: Exception) -> KodiakError:
        if isinstance(exc, KodiakError):
            return exc

        if isinstance(
            exc,
            (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout, httpx.NetworkError),
        ) or isinstance(exc, ConnectionError):
            return ModelConnectionError(f"Unable to connect to model host {self.host}.")

        lower_message = str(exc).lower()
        status_code = getattr(exc, "status_code", None)
        if isinstance(exc, ResponseError) and status_code == 404:
            return ModelNotFoundError(f"Model {self.model!r} was not found on {self.host}.")
        if "model" in lower_message and "not found" in lower_message:
            return ModelNotFoundError(f"Model {self.model!r} was not found on {self.host}.")

        return ModelStreamingError(f"Failed to stream response from {self.host}: {exc}")

    # -- Streaming ---------------------------------------------------------

    def _request_kwargs(self, messages: list[dict[str, Any]], stream: bool) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": stream,
            "options": {"num_ctx": self.max_context_tokens},
        }
        if stream and self.tools is not None and not self.tools.is_empty():
            kwargs["tools"] = self.tools.build_tools_list()
        return kwargs

    async def _stream_once(
        self, messages: list[dict[str, Any]], with_tools: bool = True
    ) -> AsyncIterator[str | _ToolCall]:
        kwargs = self._request_kwargs(messages, stream=True)
        if not with_tools:
            kwargs.pop("tools", None)
        stream = await self._client.chat(**kwargs)
        async for chunk in stream:
            text = self._extract_text(chunk)
            if text:
                yield text
            for call in self._extract_tool_calls(chunk):
                yield call

    @staticmethod
    def _join(prefix: str, text: str) -> str:
        return f"{prefix}\n\n{text}" if prefix else text

    async def stream_response(self, prompt: str) -> AsyncIterator[ResponseSnapshot]:
        """Send ``prompt`` and yield the cumulative visible reply as it grows.

        Transport failures are retried only while the current request has not
        produced anything; after that they surface as ``KodiakError``. Any
        failure rolls the prompt back out of the transcript.
        """
        normalized = prompt.strip()
        if not normalized:
            return

        self.transcript.append("user", normalized)
        request_messages: list[dict[str, Any]] = self.transcript.build_context()
        visible = ""

        try:
            # One extra round past the limit asks for an answer without tools.
            for iteration in range(self.max_tool_iterations + 1):
                final_round = iteration == self.max_tool_iterations
                if final_round:
                    LOGGER.warning(
                        "session.tool.limit",
                        extra={
                            "event": "session.tool.limit",
                            "max_tool_iterations": self.max_tool_iterations,
                        },
                    )
                prefix = visible
                iteration_content = ""
                tool_calls: list[_ToolCall] = []

                for attempt in range(self.retries + 1):
                    try:
                        async for piece in self._stream_once(
                            request_messages, with_tools=not final_round
                        ):
                            if isinstance(piece, str):
                                iteration_content += piece
                                visible = self._join(prefix, iteration_content)
                                yield ResponseSnapshot(visible)
                            elif not final_round:
                                tool_calls.append(piece)
                        break
                    except asyncio.CancelledError:
                        LOGGER.info(
                            "session.request.cancelled",
                            extra={"event": "session.request.cancelled"},
                        )
                        raise
                    except Exception as exc:  # noqa: BLE001 - external API can fail in many ways.
                        mapped = self._map_exception(exc)
                        produced = bool(iteration_content or tool_calls)
                        LOGGER.warning(
                            "session.request.retry",
                            extra={
                                "event": "session.request.retry",
                                "attempt": attempt + 1,
                                "error_type": type(mapped).__name__,
                                "produced_output": produced,
                            },
                        )
                        if produced or attempt >= self.retries:
                            raise mapped from exc
                        await asyncio.sleep(self.retry_backoff_seconds * (attempt + 1))

                if final_round:
                    if not visible:
                        visible = TOOL_LIMIT_REPLY
                        yield ResponseSnapshot(visible)
                    break

                if not tool_calls and self.tools is not None and iteration_content:
                    tool_calls = self._parse_inline_tool_call(
                        iteration_content, set(self.tools.names())
                    )
                    if tool_calls:
                        iteration_content = ""
                        visible = prefix
                        yield ResponseSnapshot(visible)

                if not tool_calls or self.tools is None:
                    break

                request_messages.append(
                    {
                        "role": "assistant",
                        "content": iteration_content,
                        "tool_calls": [
                            {
                                "type": "function",
                                "function": {
                                    "name": call.name,
                                    "arguments": call.arguments,
                                    "index": call.index if call.index is not None else seq,
                                },
                            }
                            for seq, call in enumerate(tool_calls)
                        ],
                    }
                )
                for call in tool_calls:
                    LOGGER.info(
                        "session.tool.call",
                        extra={
                            "event": "session.tool.call",
                            "tool": call.name,
                            "iteration": iteration + 1,
                        },
                    )
                    result = await self.tools.execute(call.name, call.arguments)
                    request_messages.append(
                        {"role": "tool", "tool_name": call.name, "content": result}
                    )
        except BaseException:
            self.transcript.rollback_last_user()
            raise

        self.transcript.append("assistant", visible)

    async def respond(
        self, prompt: str, output_shape: type[BaseModel] | None = None
    ) -> ModelResponse:
        """Single-shot reply; with ``output_shape`` the reply is parsed into that model."""
        self.transcript.append("user", prompt.strip())
        kwargs = self._request_kwargs(self.transcript.build_context(), stream=False)
        if output_shape is not None:
            kwargs["format"] = output_shape.model_json_schema()

        try:
            response: Any = None
            for attempt in range(self.retries + 1):
                try:
                    response = await self._client.chat(**kwargs)
                    break
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # noqa: BLE001 - external API can fail in many ways.
                    mapped = self._map_exception(exc)
                    if attempt >= self.retries:
                        raise mapped from exc
                    await asyncio.sleep(self.retry_backoff_seconds * (attempt + 1))

            text = self._extract_text(response)
            content: Any = text
            if output_shape is not None:
                try:
                    content = output_shape.model_validate_json(text)
                except ValidationError as exc:
                    raise ModelStreamingError(
                        f"Model reply did not match {output_shape.__name__}."
                    ) from exc
        except BaseException:
            self.transcript.rollback_last_user()
            raise

        self.transcript.append("assistant", text)
        return ModelResponse(content=content)


def create_client(config: OllamaConfig) -> AsyncClient:
    return AsyncClient(host=config.host, timeout=config.timeout)


def build_session_factory(config: OllamaConfig, client: Any | None = None) -> SessionFactory:
    """Return a factory that opens sessions sharing one client and one policy."""
    shared_client = client if client is not None else create_client(config)

    def factory(instructions: str, tools: ToolRegistry | None = None) -> ModelSession:
        return OllamaSession(
            shared_client,
            config.model,
            instructions,
            tools,
            host=config.host,
            retries=config.retries,
            retry_backoff_seconds=config.retry_backoff_seconds,
            max_history_messages=config.max_history_messages,
            max_context_tokens=config.max_context_tokens,
            max_tool_iterations=config.max_tool_iterations,
        )

    return factory
