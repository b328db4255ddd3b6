"""Turn state machine guarding the controller's single in-flight reply."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging

LOGGER = logging.getLogger(__name__)


class TurnState(str, Enum):
    """Where the controller's one live turn currently is.

    IDLE accepts a new send or regeneration. STREAMING means a reply is being
    written into its placeholder. CANCELLING is the short window between an
    interrupt and the task unwinding. ERROR is held only until the failed
    turn has settled its placeholder, then the controller returns to IDLE.
    """

    IDLE = "IDLE"
    STREAMING = "STREAMING"
    CANCELLING = "CANCELLING"
    ERROR = "ERROR"


class StateManager:
    """Serialise turn-state changes behind an asyncio lock.

    Reads through ``current`` and ``is_idle`` are lock-free snapshots used by
    the controller's guards; only ``transition_if`` may claim a turn.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._state = TurnState.IDLE

    @property
    def current(self) -> TurnState:
        return self._state

    @property
    def is_idle(self) -> bool:
        """True when no turn is streaming, cancelling or settling a failure."""
        return self._state is TurnState.IDLE

    async def transition_to(self, new_state: TurnState) -> TurnState:
        """Unconditionally move to ``new_state``; used to settle a turn."""
        async with self._lock:
            previous, self._state = self._state, new_state
        if previous is not new_state:
            LOGGER.debug(
                "turn.state.changed",
                extra={
                    "event": "turn.state.changed",
                    "from_state": previous.value,
                    "to_state": new_state.value,
                },
            )
        return new_state

    async def transition_if(
        self,
        expected_state: TurnState,
        new_state: TurnState,
    ) -> bool:
        """Compare-and-set: claim ``new_state`` only from ``expected_state``.

        Two sends racing for IDLE -> STREAMING see exactly one winner.
        """
        async with self._lock:
            if self._state is not expected_state:
                return False
            self._state = new_state
        return True
