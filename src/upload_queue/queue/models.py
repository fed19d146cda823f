# src/upload_queue/queue/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..errors import StorageError


class UploadStatus(StrEnum):
    """
    Upload lifecycle status.

    Closed set: QUEUED -> UPLOADING -> DONE, with UPLOADING -> QUEUED on
    failure or staleness.
    """

    QUEUED = "QUEUED"
    UPLOADING = "UPLOADING"
    DONE = "DONE"

    @classmethod
    def from_db(cls, raw: str | None) -> UploadStatus:
        try:
            return cls(raw)
        except ValueError as e:
            raise StorageError(f"unknown upload state in database: {raw!r}") from e


class UploadEvent(StrEnum):
    INIT = "INIT"
    STATUS_CHANGE = "STATUS_CHANGE"


@dataclass(slots=True)
class UploadTask:
    id: int
    key: str

    image_uri: str
    file_name: str

    latitude: float | None
    longitude: float | None
    quality: int | None
    payload: str | None

    status: UploadStatus
    updated_at: float
