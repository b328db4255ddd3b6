"""Turn controller: one model session, one in-flight reply, explicit notifications."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
import logging
from typing import Any
from uuid import UUID

import structlog

from .attachments import AttachmentRegistry, get_attachment_registry
from .config import DEFAULT_SYSTEM_PROMPT
from .events import EventBus
from .events.domain import (
    CONVERSATION_CREATED,
    CONVERSATION_DELETED,
    CONVERSATION_SELECTED,
    CONVERSATION_UPDATED,
    MESSAGE_CREATED,
    MESSAGE_DELETED,
    MESSAGE_UPDATED,
    SUGGESTIONS_UPDATED,
    TURN_COMPLETED,
    TURN_FAILED,
    TURN_INTERRUPTED,
    TURN_STARTED,
)
from .exceptions import KodiakError, PersistenceError
from .models import (
    MAX_TITLE_LENGTH,
    Attachment,
    AttachmentKind,
    Conversation,
    Message,
)
from .persistence import ConversationStore
from .session import ModelSession, SessionFactory
from .state import StateManager, TurnState
from .task_manager import TaskManager
from .tools.registry import ToolRegistry
from .workflows.regenerate import resolve_target
from .workflows.streaming import stream_to_completion
from .workflows.suggestions import SuggestionWorkflow
from .workflows.title import TitleWorkflow

LOGGER = logging.getLogger(__name__)

ACTIVE_TURN = "active_turn"

IMAGE_TOOL_NAME = "analyzeImage"
DOCUMENT_TOOL_NAME = "analyzeDocument"


@dataclass
class ComposerDraft:
    """Text and staged attachments not yet sent."""

    text: str = ""
    attachments: list[Attachment] = field(default_factory=list)

    def attach(
        self, kind: AttachmentKind, data: bytes, filename: str = ""
    ) -> Attachment:
        attachment = Attachment(kind=kind, data=data, filename=filename)
        self.attachments.append(attachment)
        return attachment

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.attachments

    def clear(self) -> None:
        self.text = ""
        self.attachments = []


class TurnController:
    """Owns the active conversation, its model session and the single live turn.

    At most one reply streams at a time, enforced by an IDLE -> STREAMING
    compare-and-set on the state manager. Every mutation goes through the
    conversation store first and is then announced on the event bus.
    """

    def __init__(
        self,
        store: ConversationStore,
        session_factory: SessionFactory,
        *,
        tool_factory: Callable[[], ToolRegistry] | None = None,
        attachments: AttachmentRegistry | None = None,
        event_bus: EventBus | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        title_workflow: TitleWorkflow | None = None,
        suggestion_workflow: SuggestionWorkflow | None = None,
    ) -> None:
        self.store = store
        self.attachments = attachments or get_attachment_registry()
        self.event_bus = event_bus or EventBus()
        self.system_prompt = system_prompt
        self.draft = ComposerDraft()
        self.welcome_suggestions: list[str] = []

        self._session_factory = session_factory
        self._tool_factory = tool_factory
        self._title_workflow = title_workflow or TitleWorkflow(session_factory)
        self._suggestion_workflow = suggestion_workflow or SuggestionWorkflow(
            session_factory
        )

        self._state = StateManager()
        self._tasks = TaskManager()
        self._session: ModelSession | None = None
        self._tool_names: frozenset[str] = frozenset()
        self._active_id: UUID | None = None
        self._awaiting = False
        self._streaming_message_id: UUID | None = None
        self._interrupted = False
        self._titled: set[UUID] = set()

    # -- Observable state --------------------------------------------------

    @property
    def state(self) -> TurnState:
        return self._state.current

    @property
    def awaiting_response(self) -> bool:
        return self._awaiting

    @property
    def streaming_message_id(self) -> UUID | None:
        return self._streaming_message_id

    @property
    def active_conversation(self) -> Conversation | None:
        if self._active_id is None:
            return None
        return self.store.get_conversation(self._active_id)

    @property
    def session(self) -> ModelSession | None:
        return self._session

    async def _emit(self, event_name: str, **data: Any) -> None:
        await self.event_bus.publish(event_name, data, source="controller")

    def _save(self) -> None:
        try:
            self.store.save()
        except PersistenceError as exc:
            LOGGER.error(
                "store.save.failed",
                extra={"event": "store.save.failed", "error": str(exc)},
            )

    # -- Session -----------------------------------------------------------

    def _rebuild_session(self, history: Sequence[Message] | None = None) -> None:
        """Open a fresh session for the active conversation and replay its history."""
        tools = self._tool_factory() if self._tool_factory is not None else None
        self._tool_names = frozenset(tools.names()) if tools is not None else frozenset()
        session = self._session_factory(self.system_prompt, tools)
        if history is None:
            history = (
                self.store.messages_for(self._active_id) if self._active_id else []
            )
        session.load_history(history)
        self._session = session
        LOGGER.info(
            "session.rebuilt",
            extra={
                "event": "session.rebuilt",
                "conversation_id": str(self._active_id),
                "history": len(history),
                "tools": sorted(self._tool_names),
            },
        )

    # -- Conversations -----------------------------------------------------

    async def start(self) -> Conversation:
        """Activate the most recently updated conversation, creating one if needed."""
        conversations = self.store.fetch_conversations()
        if conversations:
            await self._activate(conversations[0])
            return conversations[0]
        conversation = await self._create_and_activate()
        return conversation

    async def _activate(self, conversation: Conversation) -> None:
        self._active_id = conversation.id
        self._rebuild_session()
        await self._emit(CONVERSATION_SELECTED, conversation_id=str(conversation.id))

    async def _create_and_activate(self) -> Conversation:
        conversation = self.store.create_conversation()
        self._save()
        await self._emit(CONVERSATION_CREATED, conversation_id=str(conversation.id))
        await self._activate(conversation)
        return conversation

    async def create_conversation(self) -> Conversation | None:
        if not self._state.is_idle:
            LOGGER.warning(
                "conversation.create.rejected",
                extra={"event": "conversation.create.rejected", "state": self.state.value},
            )
            return None
        return await self._create_and_activate()

    async def select_conversation(self, conversation_id: UUID) -> Conversation | None:
        if not self._state.is_idle:
            LOGGER.warning(
                "conversation.select.rejected",
                extra={"event": "conversation.select.rejected", "state": self.state.value},
            )
            return None
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            return None
        if conversation.id != self._active_id:
            await self._activate(conversation)
        return conversation

    def list_conversations(self) -> list[Conversation]:
        return self.store.fetch_conversations()

    async def delete_conversation(self, conversation_id: UUID) -> bool:
        if conversation_id == self._active_id and not self._state.is_idle:
            return False
        if not self.store.delete_conversation(conversation_id):
            return False
        self._titled.discard(conversation_id)
        self._save()
        await self._emit(CONVERSATION_DELETED, conversation_id=str(conversation_id))

        if conversation_id == self._active_id:
            self._active_id = None
            remaining = self.store.fetch_conversations()
            if remaining:
                await self._activate(remaining[0])
            else:
                await self._create_and_activate()
        return True

    async def delete_all_conversations(self) -> bool:
        if not self._state.is_idle:
            return False
        deleted = [c.id for c in self.store.fetch_conversations()]
        self.store.delete_all()
        self._titled.clear()
        self._active_id = None
        self._save()
        for conversation_id in deleted:
            await self._emit(CONVERSATION_DELETED, conversation_id=str(conversation_id))
        await self._create_and_activate()
        return True

    async def rename_conversation(
        self, conversation_id: UUID, title: str
    ) -> Conversation | None:
        normalized = " ".join(title.split())[:MAX_TITLE_LENGTH].strip()
        if not normalized:
            return None
        conversation = self.store.update_conversation(conversation_id, title=normalized)
        if conversation is None:
            return None
        self._save()
        await self._emit(
            CONVERSATION_UPDATED,
            conversation_id=str(conversation_id),
            title=conversation.title,
        )
        return conversation

    async def toggle_pin(self, conversation_id: UUID) -> Conversation | None:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            return None
        self.store.update_conversation(conversation_id, pinned=not conversation.is_pinned)
        self._save()
        await self._emit(
            CONVERSATION_UPDATED,
            conversation_id=str(conversation_id),
            is_pinned=conversation.is_pinned,
        )
        return conversation

    def export_markdown(self, conversation_id: UUID) -> str:
        return self.store.export_markdown(conversation_id)

    # -- Messages ----------------------------------------------------------

    async def delete_message(self, message_id: UUID) -> bool:
        if message_id == self._streaming_message_id:
            return False
        message = self.store.get_message(message_id)
        if message is None or not self.store.delete_message(message_id):
            return False
        self._save()
        await self._emit(
            MESSAGE_DELETED,
            message_id=str(message_id),
            conversation_id=str(message.conversation_id),
        )
        if message.conversation_id == self._active_id and self._state.is_idle:
            self._rebuild_session()
        return True

    async def _create_message(
        self,
        conversation: Conversation,
        content: str,
        is_user: bool,
        attachments: list[Attachment] | None = None,
        **kwargs: Any,
    ) -> Message:
        message = self.store.create_message(
            content, is_user, conversation.id, attachments, **kwargs
        )
        await self._emit(
            MESSAGE_CREATED,
            message_id=str(message.id),
            conversation_id=str(conversation.id),
            is_user=is_user,
        )
        self._maybe_generate_title(conversation)
        return message

    async def _write_content(self, message: Message, content: str) -> None:
        self.store.update_message_content(message.id, content)
        await self._emit(
            MESSAGE_UPDATED,
            message_id=str(message.id),
            conversation_id=str(message.conversation_id),
            content=content,
        )

    def _prompt_for(self, message: Message) -> str:
        """The user text plus hints pointing the model at attached files."""
        hints: list[str] = []
        if message.images() and IMAGE_TOOL_NAME in self._tool_names:
            hints.append(
                "[An image is attached. Use the analyzeImage tool without an "
                "attachmentId to analyze the most recent image.]"
            )
        if (
            any(a.kind is AttachmentKind.DOCUMENT for a in message.attachments)
            and DOCUMENT_TOOL_NAME in self._tool_names
        ):
            hints.append(
                "[A document is attached. Use the analyzeDocument tool without "
                "text to analyze the most recent document.]"
            )
        text = message.content.strip()
        if not text and not hints:
            # An attachment-only send still needs something for the model to answer.
            hints = [
                f"[The user attached {'an image' if kind is AttachmentKind.IMAGE else 'a document'}.]"
                for kind in dict.fromkeys(a.kind for a in message.attachments)
            ]
        if not hints:
            return text
        hint_text = "\n".join(hints)
        return f"{text}\n\n{hint_text}" if text else hint_text

    # -- Turns -------------------------------------------------------------

    async def send_draft(self) -> Message | None:
        return await self.send_message(self.draft.text, list(self.draft.attachments))

    async def send_message(
        self, text: str, attachments: list[Attachment] | None = None
    ) -> Message | None:
        """Persist the user turn, then stream the reply into a placeholder.

        Returns the finished reply message, or None when the send was ignored
        because the input was empty or another reply is still streaming.
        Stream failures propagate after the placeholder and flags are settled.
        """
        attachments = list(attachments or [])
        if not text.strip() and not attachments:
            return None

        if not await self._state.transition_if(TurnState.IDLE, TurnState.STREAMING):
            LOGGER.warning(
                "turn.rejected",
                extra={"event": "turn.rejected", "state": self.state.value},
            )
            return None
        LOGGER.info(
            "turn.state.transition",
            extra={"event": "turn.state.transition", "from_state": "IDLE", "to_state": "STREAMING"},
        )

        try:
            conversation = self.active_conversation
            if conversation is None:
                conversation = self.store.create_conversation()
                await self._emit(CONVERSATION_CREATED, conversation_id=str(conversation.id))
                await self._activate(conversation)

            user_message = await self._create_message(
                conversation, text, True, attachments
            )
            for attachment in user_message.attachments:
                self.attachments.register_attachment(attachment)
            self.draft.clear()
            self._save()

            placeholder = await self._create_message(conversation, "", False)
            self._save()
        except BaseException:
            await self._state.transition_to(TurnState.IDLE)
            raise

        return await self._run_turn(placeholder, self._prompt_for(user_message))

    async def regenerate_response(
        self,
        *,
        target_assistant: Message | None = None,
        target_user: Message | None = None,
    ) -> Message | None:
        """Replay a user prompt into its reply slot.

        Exactly one target must be given. Regenerating from an assistant
        message overwrites it in place; from a user message, the immediately
        following reply is overwritten or, when there is none, one new reply
        is created. Unresolvable targets are a no-op.
        """
        target = target_assistant or target_user
        if target is None or target.conversation_id != self._active_id:
            return None
        conversation = self.store.get_conversation(target.conversation_id)
        if conversation is None:
            return None
        messages = self.store.messages_for(target.conversation_id)
        resolved = resolve_target(
            messages, target_assistant=target_assistant, target_user=target_user
        )
        if resolved is None:
            LOGGER.info(
                "turn.regenerate.unresolved",
                extra={"event": "turn.regenerate.unresolved", "message_id": str(target.id)},
            )
            return None

        if not await self._state.transition_if(TurnState.IDLE, TurnState.STREAMING):
            LOGGER.warning(
                "turn.rejected",
                extra={"event": "turn.rejected", "state": self.state.value},
            )
            return None

        try:
            # Replay only what preceded the prompt.
            self._rebuild_session(
                [m for m in messages if m.timestamp < resolved.user.timestamp]
            )
            reply = resolved.assistant
            if reply is None:
                reply = await self._create_message(
                    conversation,
                    "",
                    False,
                    timestamp=resolved.placeholder_timestamp(),
                )
                self._save()
        except BaseException:
            await self._state.transition_to(TurnState.IDLE)
            raise

        try:
            return await self._run_turn(reply, self._prompt_for(resolved.user))
        finally:
            if self._active_id == conversation.id:
                self._rebuild_session()

    async def _stream_into(self, message: Message, prompt: str) -> str:
        session = self._session
        if session is None:
            raise KodiakError("No model session is open for the active conversation.")

        async def _on_snapshot(content: str) -> None:
            await self._write_content(message, content)

        return await stream_to_completion(session, prompt, _on_snapshot)

    async def _run_turn(self, reply: Message, prompt: str) -> Message:
        """Stream into ``reply``; the state must already be STREAMING."""
        # Every record logged during the turn carries these ids.
        log_context = structlog.contextvars.bind_contextvars(
            conversation_id=str(reply.conversation_id), message_id=str(reply.id)
        )
        self._interrupted = False
        self._awaiting = True
        self._streaming_message_id = reply.id
        await self._emit(
            TURN_STARTED,
            message_id=str(reply.id),
            conversation_id=str(reply.conversation_id),
        )

        completed = False
        try:
            task = self._tasks.spawn(self._stream_into(reply, prompt), name=ACTIVE_TURN)
            final = await task
            await self._write_content(reply, final)
            completed = True
        except asyncio.CancelledError:
            if not self._interrupted:
                raise
            LOGGER.info(
                "turn.interrupted",
                extra={"event": "turn.interrupted", "message_id": str(reply.id)},
            )
            await self._emit(
                TURN_INTERRUPTED, message_id=str(reply.id), content=reply.content
            )
            return reply
        except Exception as exc:
            await self._state.transition_to(TurnState.ERROR)
            LOGGER.error(
                "turn.failed",
                extra={
                    "event": "turn.failed",
                    "message_id": str(reply.id),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            await self._emit(
                TURN_FAILED,
                message_id=str(reply.id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if isinstance(exc, KodiakError):
                raise
            raise KodiakError(str(exc)) from exc
        finally:
            self._awaiting = False
            self._streaming_message_id = None
            self.store.touch(reply.conversation_id)
            self._save()
            if not completed and reply.conversation_id == self._active_id:
                # The session dropped the prompt; replay what the store kept.
                self._rebuild_session()
            await self._state.transition_to(TurnState.IDLE)
            structlog.contextvars.reset_contextvars(**log_context)

        await self._emit(
            TURN_COMPLETED,
            message_id=str(reply.id),
            conversation_id=str(reply.conversation_id),
            content=reply.content,
        )
        return reply

    async def interrupt(self) -> bool:
        """Cancel the in-flight reply, keeping whatever streamed so far."""
        if not self._tasks.is_running(ACTIVE_TURN):
            return False
        self._interrupted = True
        await self._state.transition_to(TurnState.CANCELLING)
        return await self._tasks.cancel(ACTIVE_TURN)

    # -- Side workflows ----------------------------------------------------

    def _maybe_generate_title(self, conversation: Conversation) -> None:
        if conversation.id in self._titled:
            return
        if len(conversation.messages) != 2 or not conversation.is_untitled:
            return
        self._titled.add(conversation.id)
        self._tasks.spawn(self._generate_title(conversation.id))

    async def _generate_title(self, conversation_id: UUID) -> None:
        messages = self.store.messages_for(conversation_id)
        first = next((m for m in messages if m.is_user), None)
        if first is None:
            return
        seed = first.content.strip() or "an attached file"
        try:
            title = await self._title_workflow.generate(seed)
        except Exception as exc:  # noqa: BLE001 - titles are best-effort.
            LOGGER.warning(
                "title.failed",
                extra={
                    "event": "title.failed",
                    "conversation_id": str(conversation_id),
                    "error": str(exc),
                },
            )
            return
        conversation = self.store.get_conversation(conversation_id)
        if not title or conversation is None or not conversation.is_untitled:
            return
        self.store.update_conversation(conversation_id, title=title)
        self._save()
        await self._emit(
            CONVERSATION_UPDATED,
            conversation_id=str(conversation_id),
            title=conversation.title,
        )

    async def load_welcome_suggestions(self) -> list[str]:
        """Generate starter prompts once; later calls reuse the cached list."""
        if self.welcome_suggestions:
            return self.welcome_suggestions
        try:
            suggestions = await self._suggestion_workflow.generate()
        except Exception as exc:  # noqa: BLE001 - suggestions are optional.
            LOGGER.warning(
                "suggestions.failed",
                extra={"event": "suggestions.failed", "error": str(exc)},
            )
            return []
        self.welcome_suggestions = suggestions
        await self._emit(SUGGESTIONS_UPDATED, suggestions=list(suggestions))
        return suggestions

    async def wait_for_background(self) -> None:
        """Wait until side workflows (title generation) have finished."""
        await self._tasks.await_background()

    async def close(self) -> None:
        await self._tasks.cancel_all()
        await self._state.transition_to(TurnState.IDLE)
        self._save()
