"""Lifecycle tracking for the controller's background asyncio tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Track the named in-flight turn plus anonymous side workflows.

    Named tasks (the active turn) can be cancelled individually. Anonymous
    tasks (title generation, suggestion loading) remove themselves once done
    and have their failures logged instead of being dropped on the floor.
    """

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create a task for ``coro`` on the running loop and track it."""
        task = asyncio.create_task(coro)
        self.add(task, name=name)
        return task

    def add(self, task: asyncio.Task[Any], name: str | None = None) -> None:
        """Register a task, optionally under a unique name.

        A named task replaces any prior task with the same name; the old
        task is not cancelled.
        """
        if name is not None:
            self._named[name] = task
            task.add_done_callback(lambda done, key=name: self._forget(key, done))
        else:
            self._anonymous.add(task)
            task.add_done_callback(self._anonymous.discard)
            task.add_done_callback(self._log_anonymous_exception)

    def _forget(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._named.get(name) is task:
            del self._named[name]

    def _log_anonymous_exception(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                "task.background.exception",
                extra={
                    "event": "task.background.exception",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        """Return the named task or ``None`` if not registered."""
        return self._named.get(name)

    def is_running(self, name: str) -> bool:
        task = self._named.get(name)
        return task is not None and not task.done()

    async def cancel(self, name: str) -> bool:
        """Cancel a named task and wait for it to unwind.

        Returns True when a running task was cancelled.
        """
        task = self._named.pop(name, None)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:  # noqa: BLE001 - the owner of the task reports its failure.
            pass
        return True

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        all_tasks = list(self._named.values()) + [
            t for t in self._anonymous if not t.done()
        ]
        for task in all_tasks:
            if not task.done():
                task.cancel()
        for task in all_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001 - already logged by done callbacks.
                pass
        self._named.clear()
        self._anonymous.clear()

    async def await_background(self) -> None:
        """Wait for anonymous tasks, including ones spawned while waiting."""
        while True:
            pending = [t for t in self._anonymous if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
