# tests/test_upload_store.py

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from upload_queue.errors import NotFound, StorageError
from upload_queue.queue.models import UploadStatus
from upload_queue.queue.store import UploadStore

from .fakes import FakeClock


def _insert(store: UploadStore, name: str, **kw):
    return store.insert(key=kw.pop("key", name), image_uri=f"file:///tmp/{name}", file_name=name, **kw)


def test_insert_find_and_count(store: UploadStore, clock: FakeClock) -> None:
    task = store.insert(
        key="k1",
        image_uri="file:///tmp/dummy.jpg",
        file_name="dummy1.jpg",
        latitude=32.32,
        longitude=-120.12,
        quality=40,
        payload='{"device":666}',
    )

    assert task.id > 0
    assert task.status == UploadStatus.QUEUED
    assert task.updated_at == clock.now
    assert task.latitude == pytest.approx(32.32)
    assert task.payload == '{"device":666}'

    assert store.count() == 1
    assert store.count(UploadStatus.QUEUED) == 1
    assert store.count(UploadStatus.DONE) == 0
    assert store.find_by_id(task.id) == task
    assert store.find_by_id(task.id + 100) is None


def test_optional_fields_round_trip_as_none(store: UploadStore) -> None:
    task = _insert(store, "a.jpg")
    found = store.find_by_id(task.id)
    assert found is not None
    assert found.latitude is None
    assert found.longitude is None
    assert found.quality is None
    assert found.payload is None


def test_ids_are_monotonic_and_rows_not_duplicated(store: UploadStore) -> None:
    ids = [_insert(store, f"{i}.jpg", key="same").id for i in range(3)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 3
    assert store.count() == 3


def test_find_by_status_bounds_and_order(store: UploadStore, clock: FakeClock) -> None:
    t0 = clock.now
    a = _insert(store, "a.jpg")
    clock.advance(10)
    b = _insert(store, "b.jpg")
    clock.advance(10)
    c = _insert(store, "c.jpg")

    def ids(**kw) -> list[int]:
        return [t.id for t in store.find_by_status(UploadStatus.QUEUED, **kw)]

    assert ids() == [a.id, b.id, c.id]
    assert ids(older_than=t0 + 15) == [a.id, b.id]
    assert ids(newer_than=t0 + 10) == [b.id, c.id]
    assert ids(older_than=t0 + 15, newer_than=t0 + 5) == [b.id]
    # upper bound is exclusive
    assert ids(older_than=t0 + 10) == [a.id]
    assert store.find_by_status(UploadStatus.UPLOADING) == []


def test_requeued_row_moves_to_the_back(store: UploadStore, clock: FakeClock) -> None:
    a = _insert(store, "a.jpg")
    clock.advance(1)
    b = _insert(store, "b.jpg")
    assert store.next_queued().id == a.id

    clock.advance(1)
    store.update_status(a.id, UploadStatus.UPLOADING)
    store.update_status(a.id, UploadStatus.QUEUED)

    assert store.next_queued().id == b.id
    assert [t.id for t in store.find_by_status(UploadStatus.QUEUED)] == [b.id, a.id]


def test_updated_at_strictly_increases_under_a_frozen_clock(store: UploadStore) -> None:
    a = _insert(store, "a.jpg")
    b = _insert(store, "b.jpg")
    assert b.updated_at > a.updated_at
    assert store.next_queued().id == a.id


def test_update_status_refreshes_updated_at(store: UploadStore, clock: FakeClock) -> None:
    task = _insert(store, "a.jpg")
    clock.advance(5)

    updated = store.update_status(task.id, UploadStatus.UPLOADING)

    assert updated.status == UploadStatus.UPLOADING
    assert updated.updated_at == clock.now
    assert store.find_by_id(task.id) == updated


def test_update_status_and_touch_missing_id_raise_not_found(store: UploadStore) -> None:
    with pytest.raises(NotFound) as exc:
        store.update_status(999, UploadStatus.DONE)
    assert exc.value.task_id == 999

    with pytest.raises(NotFound):
        store.touch(999)


def test_try_update_status_only_moves_rows_in_the_expected_state(
    store: UploadStore, clock: FakeClock
) -> None:
    task = _insert(store, "a.jpg")
    store.update_status(task.id, UploadStatus.DONE)
    before = store.find_by_id(task.id)
    clock.advance(1)

    assert store.try_update_status(task.id, UploadStatus.QUEUED, expected=UploadStatus.UPLOADING) is None
    assert store.find_by_id(task.id) == before
    assert store.try_update_status(999, UploadStatus.DONE, expected=UploadStatus.UPLOADING) is None

    other = _insert(store, "b.jpg")
    moved = store.try_update_status(other.id, UploadStatus.UPLOADING, expected=UploadStatus.QUEUED)
    assert moved.status == UploadStatus.UPLOADING
    assert moved.updated_at == clock.now


def test_try_touch_skips_rows_in_another_state(store: UploadStore, clock: FakeClock) -> None:
    task = _insert(store, "a.jpg")
    stamp = task.updated_at
    clock.advance(1)

    assert store.try_touch(task.id, expected=UploadStatus.UPLOADING) is None
    assert store.find_by_id(task.id).updated_at == stamp

    touched = store.try_touch(task.id, expected=UploadStatus.QUEUED)
    assert touched.status == UploadStatus.QUEUED
    assert touched.updated_at > stamp


def test_touch_only_changes_updated_at(store: UploadStore, clock: FakeClock) -> None:
    task = _insert(store, "a.jpg")
    store.update_status(task.id, UploadStatus.UPLOADING)

    stamps = []
    for _ in range(3):
        clock.advance(1)
        touched = store.touch(task.id)
        assert touched.status == UploadStatus.UPLOADING
        stamps.append(touched.updated_at)

    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 3


def test_clear_returns_rows_deleted(store: UploadStore) -> None:
    for name in ("a.jpg", "b.jpg"):
        _insert(store, name)
    assert store.clear() == 2
    assert store.count() == 0
    assert store.clear() == 0


def test_drop_recreates_empty_table(store: UploadStore) -> None:
    _insert(store, "a.jpg")
    store.drop()
    assert store.count() == 0
    assert _insert(store, "b.jpg").status == UploadStatus.QUEUED


def test_db_params(store: UploadStore) -> None:
    params = store.db_params()
    assert params["version"] == "1.0"
    assert params["table"] == "uploads"
    assert params["path"].endswith("uploads.sqlite3")


def test_rows_survive_a_new_store_instance(tmp_path: Path, clock: FakeClock) -> None:
    db = tmp_path / "q.sqlite3"
    first = UploadStore(db, clock=clock)
    task = _insert(first, "a.jpg")
    first.update_status(task.id, UploadStatus.UPLOADING)

    second = UploadStore(db, clock=clock)
    found = second.find_by_id(task.id)
    assert found is not None
    assert found.status == UploadStatus.UPLOADING


def test_failed_write_rolls_back_and_raises_storage_error(store: UploadStore, clock: FakeClock) -> None:
    task = _insert(store, "a.jpg")
    before = store.find_by_id(task.id)

    conn = sqlite3.connect(str(store.db_path))
    conn.execute(
        "CREATE TRIGGER reject_updates BEFORE UPDATE ON uploads "
        "BEGIN SELECT RAISE(ABORT, 'disk full'); END"
    )
    conn.commit()
    conn.close()

    clock.advance(1)
    with pytest.raises(StorageError):
        store.update_status(task.id, UploadStatus.UPLOADING)
    with pytest.raises(StorageError):
        store.touch(task.id)

    assert store.find_by_id(task.id) == before


def test_unknown_state_in_database_is_a_storage_error(store: UploadStore) -> None:
    task = _insert(store, "a.jpg")

    conn = sqlite3.connect(str(store.db_path))
    conn.execute("UPDATE uploads SET state = 'PAUSED' WHERE id = ?", (task.id,))
    conn.commit()
    conn.close()

    with pytest.raises(StorageError):
        store.find_by_id(task.id)


def test_insert_requires_uri_and_name(store: UploadStore) -> None:
    with pytest.raises(ValueError):
        store.insert(key="k", image_uri="", file_name="a.jpg")
    with pytest.raises(ValueError):
        store.insert(key="k", image_uri="file:///tmp/a.jpg", file_name="")
