# src/upload_queue/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path


class _ConsoleNoiseFilter(logging.Filter):
    """
    Make interactive console usable:
    - allow upload_queue logs
    - but keep the per-ping probes (queue.manager DEBUG) out unless INFO+
    - suppress Python warnings (captured as 'py.warnings') unless ERROR+
    - suppress third-party noise (boto3, botocore, s3transfer) unless ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        # Our own logs: keep, except the manager's per-ping probes.
        if name.startswith("upload_queue."):
            if name == "upload_queue.queue.manager":
                return record.levelno >= logging.INFO
            return True

        # Python warnings captured into logging.
        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        # boto3 / botocore / s3transfer and anything else: only errors to console.
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/upload-queue",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - Console handler: readable + filtered for interactive use
    - File handler: full logs for debugging

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "upload-queue.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # A second call (tests, re-entry from main) must not duplicate output.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console: what an operator watching the queue needs
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    # File: the full DEBUG trail
    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    # warnings.warn(...) from boto and friends lands under 'py.warnings'
    logging.captureWarnings(True)

    # boto's wire-level DEBUG output drowns the queue transitions in the file log.
    for name in ("boto3", "botocore", "s3transfer", "urllib3"):
        logging.getLogger(name).setLevel(logging.INFO)
