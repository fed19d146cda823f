# src/upload_queue/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store, the uploader and the manager into AppState.
"""

from __future__ import annotations

import logging

from ..config import UPLOADER_S3, get_settings
from ..core.ports import Uploader
from ..core.state import AppState
from ..queue.manager import UploadManager
from ..queue.store import UploadStore
from ..uploaders.local import LocalDirUploader
from ..uploaders.s3 import S3Uploader

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.queue_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.local_upload_dir.mkdir(parents=True, exist_ok=True)


def build_uploader(settings) -> Uploader:
    if settings.uploader == UPLOADER_S3:
        logger.info("Using S3 uploader bucket=%s prefix=%s", settings.s3_bucket, settings.s3_prefix)
        return S3Uploader(
            settings.s3_bucket,
            region=settings.s3_region or None,
            prefix=settings.s3_prefix,
        )

    logger.info("Using local uploader dir=%s", settings.local_upload_dir)
    return LocalDirUploader(settings.local_upload_dir)


def create_initial_state(*, settings=None, uploader: Uploader | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the uploader) injectable makes the app easier to test.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = UploadStore(settings.queue_db_path)
    if uploader is None:
        uploader = build_uploader(settings)

    manager = UploadManager(
        store,
        uploader,
        ttl_seconds=settings.ttl_seconds,
        retry_delay_seconds=settings.retry_delay_seconds,
        drain_delay_seconds=settings.drain_delay_seconds,
    )
    return AppState(settings=settings, store=store, uploader=uploader, manager=manager)
