# src/upload_queue/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..queue.manager import UploadManager
from ..queue.store import UploadStore
from .ports import Uploader


@dataclass
class AppState:
    # Settings object (config.Settings or a test double with the same attributes).
    settings: Any

    store: UploadStore
    uploader: Uploader
    manager: UploadManager

    # Statuses last seen per task id, filled in by the console observer.
    last_seen: dict[int, str] = field(default_factory=dict)
