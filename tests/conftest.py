# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from upload_queue.cli.bootstrap import create_initial_state
from upload_queue.core.state import AppState
from upload_queue.queue.manager import UploadManager
from upload_queue.queue.store import UploadStore

from .fakes import FakeClock, FakeUploader

TTL = 600.0


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="upload-queue-test",
        log_level="DEBUG",
        console_enabled=False,
        data_dir=tmp_path,
        queue_db_path=tmp_path / "uploads.sqlite3",
        ttl_seconds=TTL,
        retry_delay_seconds=60.0,
        drain_delay_seconds=60.0,
        ping_interval_seconds=1.0,
        uploader="local",
        local_upload_dir=tmp_path / "uploaded",
        s3_bucket="",
        s3_region="",
        s3_prefix="",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(tmp_path: Path, clock: FakeClock) -> UploadStore:
    # Real SQLite: the store's transactional behaviour is part of what we test.
    return UploadStore(tmp_path / "uploads.sqlite3", clock=clock)


@pytest.fixture()
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture()
def manager(store: UploadStore, uploader: FakeUploader, clock: FakeClock) -> UploadManager:
    """Manager without self-rescheduling, so tests drive every ping explicitly."""
    return UploadManager(store, uploader, ttl_seconds=TTL, auto_ping=False, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, uploader: FakeUploader) -> AppState:
    """AppState wired by the real bootstrap, with the fake uploader injected."""
    return create_initial_state(settings=settings, uploader=uploader)
