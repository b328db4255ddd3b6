"""Voice capture loop over an external speech-to-text / text-to-speech service."""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import TYPE_CHECKING, Protocol

from .exceptions import KodiakError
from .task_manager import TaskManager

if TYPE_CHECKING:
    from .controller import TurnController

LOGGER = logging.getLogger(__name__)


class SpeechService(Protocol):
    """Platform speech collaborator.

    Callbacks are invoked on the event loop thread. ``speak`` returns once the
    utterance has finished playing.
    """

    def start_listening(
        self,
        on_partial: Callable[[str], None],
        on_final: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> None: ...

    def stop_listening(self) -> None: ...

    async def speak(self, text: str) -> None: ...

    def stop_speaking(self) -> None: ...


class VoiceLoop:
    """Turn final transcripts into sends; optionally speak replies and resume."""

    def __init__(
        self,
        controller: TurnController,
        speech: SpeechService,
        *,
        speak_replies: bool = False,
        hands_free: bool = False,
    ) -> None:
        self.controller = controller
        self.speech = speech
        self.speak_replies = speak_replies
        self.hands_free = hands_free
        self.auto_send = True
        self.listening = False
        self._active = False
        self._tasks = TaskManager()

    @property
    def active(self) -> bool:
        return self._active

    def start(self, auto_send: bool = True) -> None:
        self.auto_send = auto_send
        self._active = True
        self._listen()

    def _listen(self) -> None:
        self.listening = True
        self.speech.start_listening(self._on_partial, self._on_final, self._on_error)

    def stop(self) -> None:
        self._active = False
        if self.listening:
            self.speech.stop_listening()
        self.listening = False
        self.speech.stop_speaking()

    def _on_partial(self, text: str) -> None:
        self.controller.draft.text = text

    def _on_final(self, text: str) -> None:
        self.listening = False
        self.controller.draft.text = text
        if not self.auto_send:
            return
        self._tasks.spawn(self.handle_transcript(text))

    def _on_error(self, error: Exception) -> None:
        self.listening = False
        LOGGER.warning(
            "voice.recognition.failed",
            extra={"event": "voice.recognition.failed", "error": str(error)},
        )

    async def handle_transcript(self, text: str) -> None:
        """Send a final transcript, speak the reply and resume when hands-free."""
        if self.listening:
            self.speech.stop_listening()
            self.listening = False
        reply = None
        if text.strip():
            try:
                reply = await self.controller.send_message(text)
            except KodiakError as exc:
                LOGGER.warning(
                    "voice.turn.failed",
                    extra={"event": "voice.turn.failed", "error": str(exc)},
                )

        if reply is not None and self.speak_replies and reply.content.strip():
            await self.speech.speak(reply.content)

        if self.hands_free and self._active:
            self._listen()

    async def wait_idle(self) -> None:
        await self._tasks.await_background()
