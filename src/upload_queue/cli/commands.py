# src/upload_queue/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from pathlib import PurePath
from typing import cast

from ..core.state import AppState
from ..errors import NotFound, StorageError
from ..queue.models import UploadStatus, UploadTask
from ..uploaders.paths import resolve_local_path

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /submit, /ping, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return await h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return await h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def format_task(task: UploadTask) -> str:
    geo = ""
    if task.latitude is not None and task.longitude is not None:
        geo = f" @({task.latitude:.5f},{task.longitude:.5f})"
    return f"#{task.id} [{task.status.value}] key={task.key} fname={task.file_name}{geo}"


def make_status_printer(state: AppState, emit: CommandEmitter | None):
    """Observer that remembers the last status and echoes changes to the console."""

    def on_event(task: UploadTask, event) -> None:
        state.last_seen[task.id] = task.status.value
        if emit:
            emit(f"[{event.value}] {format_task(task)}")

    return on_event


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str]) -> str:
    store = state.store
    counts = {s.value: store.count(s) for s in UploadStatus}
    settings = state.settings
    return (
        "Status:\n"
        f"  Queued: {counts['QUEUED']}  Uploading: {counts['UPLOADING']}  Done: {counts['DONE']}\n"
        f"  TTL: {state.manager.ttl_seconds:.0f}s  Retry delay: {state.manager.retry_delay_seconds:.0f}s\n"
        f"  Uploader: {getattr(settings, 'uploader', '?')}\n"
        f"  Database: {store.db_path}"
    )


async def cmd_submit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /submit <image_uri>                    -> file name = basename, key = file name
    /submit <image_uri> <file_name> [key]
    """
    if not args:
        return "Usage: /submit <image_uri> [file_name] [key]"

    image_uri = args[0]
    file_name = args[1] if len(args) > 1 else PurePath(resolve_local_path(image_uri)).name
    key = args[2] if len(args) > 2 else file_name
    if not file_name:
        return "Cannot derive a file name; pass one explicitly."

    task = await state.manager.submit(key=key, image_uri=image_uri, file_name=file_name)
    state.manager.add_observer(task.id, make_status_printer(state, emit))
    state.last_seen[task.id] = task.status.value
    return f"Submitted {format_task(task)}"


async def cmd_ping(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit("[PING] Advancing queue...")
    ok = await state.manager.ping()
    return f"Ping {'ok' if ok else 'failed (upload requeued)'}; pending={state.manager.pending()}"


async def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list            -> every task
    /list <status>   -> tasks in QUEUED | UPLOADING | DONE
    """
    if args:
        try:
            status = UploadStatus(args[0].upper())
        except ValueError:
            return "Usage: /list [QUEUED|UPLOADING|DONE]"
        tasks = state.store.find_by_status(status)
    else:
        tasks = state.store.list_all()

    if not tasks:
        return "Queue is empty."
    return "\n".join(format_task(t) for t in tasks)


async def cmd_touch(state: AppState, args: list[str]) -> str:
    if not args or not args[0].isdigit():
        return "Usage: /touch <id>"
    try:
        task = await state.manager.touch(int(args[0]))
    except NotFound as e:
        return str(e)
    return f"Touched {format_task(task)}"


async def cmd_reset(state: AppState, args: list[str]) -> str:
    """
    /reset       -> ask for confirmation
    /reset yes   -> delete every task
    """
    if not args or args[0].lower() != "yes":
        return "This deletes every task, including unsent ones. Use /reset yes to confirm."
    try:
        deleted = await state.manager.reset()
    except StorageError:
        logger.exception("reset failed")
        return "Reset failed; see log for details."
    state.last_seen.clear()
    return f"Queue reset; {deleted} task(s) removed."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show queue counts and settings.")
registry.register(
    "submit", cmd_submit, help_text="Queue a file: /submit <image_uri> [file_name] [key].", aliases=["add"]
)
registry.register("ping", cmd_ping, help_text="Advance the queue by one upload.")
registry.register("list", cmd_list, help_text="List tasks: /list [QUEUED|UPLOADING|DONE].", aliases=["ls"])
registry.register("touch", cmd_touch, help_text="Keep an upload alive: /touch <id>.")
registry.register("reset", cmd_reset, help_text="Delete every task: /reset yes.")
