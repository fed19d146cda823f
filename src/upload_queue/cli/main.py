# src/upload_queue/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, recovers uploads that survived the
previous run, kicks the queue once, then runs either:
- the console REPL (slash commands), or
- a headless loop that pings the queue on a fixed interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..cli.commands import format_task, make_status_printer
from ..config import get_settings
from ..connectors.console_connector import print_ts, run_console_loop, run_headless_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..queue.models import UploadTask

logger = logging.getLogger(__name__)


async def _recover(state: AppState) -> int:
    printer = make_status_printer(state, print_ts if state.settings.console_enabled else None)

    def visit(task: UploadTask) -> None:
        logger.info("Recovered %s", format_task(task))
        state.manager.add_observer(task.id, printer)

    return await state.manager.recover(visit)


def _install_stop_signals() -> asyncio.Event:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(signum: int) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _handle_signal, sig)
    return stop


async def run(state: AppState) -> None:
    settings = state.settings
    manager = state.manager

    recovered = await _recover(state)
    logger.info("Recovered %d upload(s); %d pending.", recovered, manager.pending())

    # First kick; afterwards uploads reschedule themselves.
    manager.ping_later(0)

    try:
        if settings.console_enabled:
            await run_console_loop(state)
        else:
            await run_headless_loop(state, _install_stop_signals())
    finally:
        manager.close()
        state.store.close()


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)
    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
