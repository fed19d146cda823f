# src/upload_queue/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the queue core.

The manager depends on Protocols instead of concrete implementations.
This keeps the storage engine and the network transport swappable and makes
testing easier.
"""

from typing import Any, Awaitable, Callable, Protocol

from ..queue.models import UploadEvent, UploadStatus, UploadTask

Keepalive = Callable[[], None]
# Called by a transport while bytes are still moving; safe from any thread.

Observer = Callable[[UploadTask, UploadEvent], Any]
# Plain function or coroutine function; the return value is ignored (awaited if awaitable).


class Uploader(Protocol):
    """
    Transport-side port: how the manager pushes one file to its destination.

    Must raise UploadFailure (or any other exception) when the transfer fails;
    returning normally means the upload succeeded.
    """

    def upload(
            self,
            *,
            image_uri: str,
            file_name: str,
            latitude: float | None,
            longitude: float | None,
            quality: int | None,
            payload: str | None,
            keepalive: Keepalive | None = None,
    ) -> Awaitable[None]: ...


class UploadRepo(Protocol):
    def insert(
            self,
            *,
            key: str,
            image_uri: str,
            file_name: str,
            latitude: float | None = None,
            longitude: float | None = None,
            quality: int | None = None,
            payload: str | None = None,
    ) -> UploadTask: ...

    def find_by_id(self, task_id: int) -> UploadTask | None: ...
    def find_by_status(
            self,
            status: UploadStatus,
            *,
            older_than: float | None = None,
            newer_than: float | None = None,
    ) -> list[UploadTask]: ...
    def next_queued(self) -> UploadTask | None: ...
    def list_all(self) -> list[UploadTask]: ...
    def update_status(self, task_id: int, new_status: UploadStatus) -> UploadTask: ...
    def try_update_status(
            self, task_id: int, new_status: UploadStatus, *, expected: UploadStatus
    ) -> UploadTask | None: ...
    def touch(self, task_id: int) -> UploadTask: ...
    def try_touch(self, task_id: int, *, expected: UploadStatus) -> UploadTask | None: ...
    def count(self, status: UploadStatus | None = None) -> int: ...
    def clear(self) -> int: ...
