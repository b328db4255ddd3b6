from __future__ import annotations

from collections.abc import Awaitable, Callable

from ..session import ModelSession

SnapshotHandler = Callable[[str], Awaitable[None]]


async def stream_to_completion(
    session: ModelSession,
    prompt: str,
    on_snapshot: SnapshotHandler | None = None,
) -> str:
    """Drive a cumulative stream to its end and return the final snapshot.

    Each snapshot replaces the previous one, so only the last value matters;
    ``on_snapshot`` sees every intermediate value for progressive rendering.
    """
    latest = ""
    async for snapshot in session.stream_response(prompt):
        latest = snapshot.content
        if on_snapshot is not None:
            await on_snapshot(latest)
    return latest
