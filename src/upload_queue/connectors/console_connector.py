# src/upload_queue/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..errors import NotFound, StorageError

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def run_console_loop(state: AppState) -> None:
    """
    Interactive slash-command REPL.

    input() runs in a worker thread so the event loop keeps serving scheduled
    pings and observer notifications while the prompt waits.
    """
    logger.info("Console connector started.")
    print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await command_registry.handle(state, line, emit=print_ts)
        except (StorageError, NotFound) as e:
            logger.error("Command failed: %s", e)
            reply = f"Storage error: {e}"
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Not a command. Use /help to list available commands."
        print_ts(reply)

    logger.info("Console connector finished.")


def _log_ping_result(fut: asyncio.Task[bool]) -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        # Not retried here; the next interval is the retry.
        logger.error("ping failed", exc_info=exc)


async def run_headless_loop(state: AppState, stop: asyncio.Event) -> None:
    """
    Ping the queue every ping_interval_seconds until `stop` is set.

    Each ping runs as its own task, so a hung transfer does not hold up the
    next tick (which is what lets TTL reclamation kick in). Pings still
    running when `stop` is set are cancelled.
    """
    interval = max(0.5, float(getattr(state.settings, "ping_interval_seconds", 30.0)))
    logger.info("Headless mode: pinging every %.1fs. Press Ctrl+C to stop.", interval)

    running: set[asyncio.Task[bool]] = set()
    try:
        while not stop.is_set():
            ping = asyncio.create_task(state.manager.ping())
            running.add(ping)
            ping.add_done_callback(running.discard)
            ping.add_done_callback(_log_ping_result)

            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        for ping in list(running):
            ping.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        logger.info("Headless loop finished.")
