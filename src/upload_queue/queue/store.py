# src/upload_queue/queue/store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

from ..errors import NotFound, StorageError
from .models import UploadStatus, UploadTask

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
TABLE = "uploads"

# Smallest step used to keep updated_at strictly increasing within one store.
_TS_EPSILON = 1e-6


class UploadStore:
    """
    SQLite upload task store.

    Pure persistence: CRUD plus status/time-range queries ordered by updated_at.
    No business rules live here; status transitions are driven by UploadManager.

    Thread-safety:
    - each method opens its own SQLite connection
    - every public method is a single transaction; sqlite3 errors roll back
      and surface as StorageError
    """

    def __init__(
        self,
        db_path: str | Path = "uploads.sqlite3",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._ts_lock = threading.Lock()
        self._last_ts = 0.0
        self._ensure_schema()
        logger.info("UploadStore ready db=%s total=%s", self._db_path, self.count())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    @property
    def db_path(self) -> Path:
        return self._db_path

    def db_params(self) -> dict[str, Any]:
        return {
            "path": str(self._db_path),
            "version": SCHEMA_VERSION,
            "table": TABLE,
        }

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextlib.contextmanager
    def _tx(self, op: str) -> Iterator[sqlite3.Cursor]:
        """
        One transaction: commit on success, roll back on any error.

        sqlite3 errors are re-raised as StorageError; NotFound passes through
        (after the rollback).
        """
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageError(f"{op}: cannot open {self._db_path}: {e}") from e
        try:
            with conn:
                yield conn.cursor()
        except sqlite3.Error as e:
            logger.error("UploadStore %s failed: %s", op, e)
            raise StorageError(f"{op} failed: {e}") from e
        finally:
            conn.close()

    def _now(self) -> float:
        with self._ts_lock:
            ts = float(self._clock())
            if ts <= self._last_ts:
                ts = self._last_ts + _TS_EPSILON
            self._last_ts = ts
            return ts

    def _ensure_schema(self) -> None:
        with self._tx("ensure_schema") as cur:
            self._create_schema(cur)

    @staticmethod
    def _create_schema(cur: sqlite3.Cursor) -> None:
        cur.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                key TEXT NOT NULL,
                image_uri TEXT NOT NULL,
                fname TEXT NOT NULL,
                lat REAL,
                lon REAL,
                quality INTEGER,
                payload TEXT,
                state TEXT NOT NULL,
                updated_at REAL NOT NULL
            )
            """
        )
        cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{TABLE}_state_ts ON {TABLE}(state, updated_at)")

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> UploadTask:
        return UploadTask(
            id=int(row["id"]),
            key=str(row["key"]),
            image_uri=str(row["image_uri"]),
            file_name=str(row["fname"]),
            latitude=float(row["lat"]) if row["lat"] is not None else None,
            longitude=float(row["lon"]) if row["lon"] is not None else None,
            quality=int(row["quality"]) if row["quality"] is not None else None,
            payload=row["payload"],
            status=UploadStatus.from_db(row["state"]),
            updated_at=float(row["updated_at"]),
        )

    def _select_one(self, cur: sqlite3.Cursor, task_id: int) -> UploadTask | None:
        cur.execute(f"SELECT * FROM {TABLE} WHERE id = ?", (int(task_id),))
        row = cur.fetchone()
        return self._row_to_task(row) if row else None

    # ---- public API ----

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
    ) -> UploadTask:
        if not image_uri:
            raise ValueError("image_uri is required")
        if not file_name:
            raise ValueError("file_name is required")

        now = self._now()
        with self._tx("insert") as cur:
            cur.execute(
                f"""
                INSERT INTO {TABLE}(key, image_uri, fname, lat, lon, quality, payload, state, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    key or "",
                    image_uri,
                    file_name,
                    latitude,
                    longitude,
                    quality,
                    payload,
                    UploadStatus.QUEUED.value,
                    now,
                ),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise StorageError("SQLite did not return lastrowid for uploads insert")
            task = self._select_one(cur, rowid)
            if task is None:
                raise StorageError(f"inserted upload {rowid} vanished before read-back")

        logger.debug("Upload enqueued id=%s key=%s fname=%s", task.id, task.key, task.file_name)
        return task

    def find_by_id(self, task_id: int) -> UploadTask | None:
        with self._tx("find_by_id") as cur:
            return self._select_one(cur, task_id)

    def find_by_status(
        self,
        status: UploadStatus,
        *,
        older_than: float | None = None,
        newer_than: float | None = None,
    ) -> list[UploadTask]:
        """
        Rows in `status`, oldest first.

        Bounds are on updated_at and optional:
        - older_than: exclusive upper bound (updated_at < older_than)
        - newer_than: inclusive lower bound (updated_at >= newer_than)
        """
        where = ["state = ?"]
        params: list[Any] = [UploadStatus(status).value]
        if older_than is not None:
            where.append("updated_at < ?")
            params.append(float(older_than))
        if newer_than is not None:
            where.append("updated_at >= ?")
            params.append(float(newer_than))

        sql = f"SELECT * FROM {TABLE} WHERE {' AND '.join(where)} ORDER BY updated_at ASC, id ASC"
        with self._tx("find_by_status") as cur:
            cur.execute(sql, params)
            return [self._row_to_task(r) for r in cur.fetchall()]

    def next_queued(self) -> UploadTask | None:
        with self._tx("next_queued") as cur:
            cur.execute(
                f"SELECT * FROM {TABLE} WHERE state = ? ORDER BY updated_at ASC, id ASC LIMIT 1",
                (UploadStatus.QUEUED.value,),
            )
            row = cur.fetchone()
            return self._row_to_task(row) if row else None

    def list_all(self) -> list[UploadTask]:
        with self._tx("list_all") as cur:
            cur.execute(f"SELECT * FROM {TABLE} ORDER BY id ASC")
            return [self._row_to_task(r) for r in cur.fetchall()]

    def update_status(self, task_id: int, new_status: UploadStatus) -> UploadTask:
        status = UploadStatus(new_status)
        now = self._now()
        with self._tx("update_status") as cur:
            cur.execute(
                f"UPDATE {TABLE} SET state = ?, updated_at = ? WHERE id = ?",
                (status.value, now, int(task_id)),
            )
            if cur.rowcount != 1:
                raise NotFound(task_id)
            task = self._select_one(cur, task_id)
            if task is None:
                raise NotFound(task_id)
            return task

    def touch(self, task_id: int) -> UploadTask:
        now = self._now()
        with self._tx("touch") as cur:
            cur.execute(f"UPDATE {TABLE} SET updated_at = ? WHERE id = ?", (now, int(task_id)))
            if cur.rowcount != 1:
                raise NotFound(task_id)
            task = self._select_one(cur, task_id)
            if task is None:
                raise NotFound(task_id)
            return task

    def try_update_status(
        self, task_id: int, new_status: UploadStatus, *, expected: UploadStatus
    ) -> UploadTask | None:
        """
        Compare-and-set transition:
          state == expected -> state = new_status

        Returns the updated row, or None when the row is missing or already
        in another state.
        """
        status = UploadStatus(new_status)
        now = self._now()
        with self._tx("try_update_status") as cur:
            cur.execute(
                f"UPDATE {TABLE} SET state = ?, updated_at = ? WHERE id = ? AND state = ?",
                (status.value, now, int(task_id), UploadStatus(expected).value),
            )
            if cur.rowcount != 1:
                return None
            return self._select_one(cur, task_id)

    def try_touch(self, task_id: int, *, expected: UploadStatus) -> UploadTask | None:
        """touch() limited to rows still in `expected`; None otherwise."""
        now = self._now()
        with self._tx("try_touch") as cur:
            cur.execute(
                f"UPDATE {TABLE} SET updated_at = ? WHERE id = ? AND state = ?",
                (now, int(task_id), UploadStatus(expected).value),
            )
            if cur.rowcount != 1:
                return None
            return self._select_one(cur, task_id)

    def count(self, status: UploadStatus | None = None) -> int:
        with self._tx("count") as cur:
            if status is None:
                cur.execute(f"SELECT COUNT(*) FROM {TABLE}")
            else:
                cur.execute(f"SELECT COUNT(*) FROM {TABLE} WHERE state = ?", (UploadStatus(status).value,))
            (n,) = cur.fetchone()
            return int(n)

    def clear(self) -> int:
        """Delete every row. Returns how many were removed."""
        with self._tx("clear") as cur:
            cur.execute(f"DELETE FROM {TABLE}")
            deleted = int(cur.rowcount)
        logger.info("UploadStore cleared rows=%s", deleted)
        return deleted

    def drop(self) -> None:
        """Drop the uploads table and recreate it empty."""
        with self._tx("drop") as cur:
            cur.execute(f"DROP TABLE IF EXISTS {TABLE}")
            self._create_schema(cur)
        logger.info("UploadStore table dropped and recreated db=%s", self._db_path)
