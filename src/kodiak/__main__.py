"""CLI entrypoint for kodiak."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Awaitable, Callable
from importlib import metadata
from pathlib import Path
import sys
from typing import Sequence, TextIO
from uuid import UUID

from .config import ensure_config_dir, load_config
from .controller import TurnController
from .events import Event
from .events.domain import MESSAGE_UPDATED
from .exceptions import KodiakError
from .logging_utils import configure_logging
from .runtime import build_controller, build_store

LineReader = Callable[[str], Awaitable[str]]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kodiak", description="Kodiak chat")
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--config", metavar="PATH", help="Path to config.toml")
    parser.add_argument(
        "--list", action="store_true", help="List stored conversations and exit"
    )
    parser.add_argument(
        "--export", metavar="ID", help="Print a conversation as markdown and exit"
    )
    return parser


class _SnapshotPrinter:
    """Render cumulative reply snapshots as an append-only terminal stream."""

    def __init__(self, out: TextIO) -> None:
        self.out = out
        self._shown = ""

    def on_update(self, event: Event) -> None:
        content = str(event.data.get("content", ""))
        if content.startswith(self._shown):
            self.out.write(content[len(self._shown):])
        else:
            self.out.write("\n" + content)
        self.out.flush()
        self._shown = content

    def finish(self) -> None:
        if self._shown:
            self.out.write("\n")
            self.out.flush()
        self._shown = ""


async def _read_line(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def chat_loop(
    controller: TurnController,
    out: TextIO = sys.stdout,
    read_line: LineReader = _read_line,
) -> None:
    """Line-based chat: plain lines are sent, ``/new``, ``/regenerate`` and ``/quit`` are commands."""
    await controller.start()
    printer = _SnapshotPrinter(out)
    controller.event_bus.subscribe(MESSAGE_UPDATED, printer.on_update)
    try:
        while True:
            try:
                line = (await read_line("> ")).strip()
            except EOFError:
                break
            if not line:
                continue
            if line == "/quit":
                break
            if line == "/new":
                await controller.create_conversation()
                out.write("Started a new conversation.\n")
                continue
            try:
                if line == "/regenerate":
                    conversation = controller.active_conversation
                    replies = [
                        m for m in (conversation.ordered_messages() if conversation else [])
                        if not m.is_user
                    ]
                    if not replies:
                        out.write("Nothing to regenerate.\n")
                        continue
                    await controller.regenerate_response(target_assistant=replies[-1])
                else:
                    await controller.send_message(line)
            except KodiakError as exc:
                out.write(f"\nError: {exc}\n")
            printer.finish()
    finally:
        controller.event_bus.unsubscribe(MESSAGE_UPDATED, printer.on_update)
        await controller.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Load configuration, handle one-shot flags, or run the interactive chat."""
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("kodiak-chat")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"kodiak {version}")
        return 0

    if args.config:
        config = load_config(Path(args.config).expanduser())
    else:
        ensure_config_dir()
        config = load_config()
    configure_logging(config.logging.model_dump())

    if args.list or args.export:
        store = build_store(config)
        if args.list:
            for conversation in store.fetch_conversations():
                pin = "*" if conversation.is_pinned else " "
                print(
                    f"{pin} {conversation.id}  "
                    f"{conversation.updated_at:%Y-%m-%d %H:%M}  {conversation.title}"
                )
            return 0
        try:
            conversation_id = UUID(args.export)
        except ValueError:
            print(f"Invalid conversation id: {args.export}", file=sys.stderr)
            return 2
        markdown = store.export_markdown(conversation_id)
        if not markdown:
            print(f"Conversation not found: {args.export}", file=sys.stderr)
            return 1
        print(markdown)
        return 0

    controller = build_controller(config)
    try:
        asyncio.run(chat_loop(controller))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
