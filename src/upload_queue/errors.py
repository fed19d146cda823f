# src/upload_queue/errors.py

from __future__ import annotations


class UploadQueueError(Exception):
    """Base class for upload queue errors."""


class StorageError(UploadQueueError):
    """
    The persistence layer rejected an operation (I/O, corruption, disk full).

    Never retried by the manager; surfaces to whoever called submit/ping/touch.
    """


class NotFound(UploadQueueError):
    """An operation referenced a task id that does not exist."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"upload task {task_id} not found")
        self.task_id = task_id


class UploadFailure(UploadQueueError):
    """Transport-level failure reported by an Uploader. Recovered by requeue + retry."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
