# src/upload_queue/queue/manager.py

from __future__ import annotations

"""
Upload manager.

Drives stored uploads through QUEUED -> UPLOADING -> DONE:
- uploads one file at a time (single-flight),
- moves failed uploads to the back of the queue and retries after a cool-down,
- reclaims uploads that have been UPLOADING longer than the TTL,
- notifies per-task observers on status changes.

The manager does not run its own polling loop. Something outside (app resume,
connectivity change, a timer) calls ping(); after each upload the manager
schedules the next ping itself so the queue drains without outside help.
"""

import asyncio
import inspect
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from ..core.ports import Keepalive, Observer, Uploader, UploadRepo
from .models import UploadEvent, UploadStatus, UploadTask

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60.0
DEFAULT_RETRY_DELAY_SECONDS = 60.0
DEFAULT_DRAIN_DELAY_SECONDS = 0.001


class UploadManager:
    def __init__(
            self,
            store: UploadRepo,
            uploader: Uploader,
            *,
            ttl_seconds: float = DEFAULT_TTL_SECONDS,
            retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
            drain_delay_seconds: float = DEFAULT_DRAIN_DELAY_SECONDS,
            auto_ping: bool = True,
            clock: Callable[[], float] | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.store = store
        self.uploader = uploader
        self.ttl_seconds = float(ttl_seconds)
        self.retry_delay_seconds = max(0.0, float(retry_delay_seconds))
        self.drain_delay_seconds = max(0.0, float(drain_delay_seconds))
        self.auto_ping = auto_ping

        self._clock = clock or time.time
        self._observers: dict[int, list[Observer]] = {}
        # Guards the check-then-claim part of ping(); never held across an upload.
        self._claim_lock = asyncio.Lock()
        self._ping_handle: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Future[Any]] = set()
        # task_id -> attempt number of the upload this process is running for it.
        # A result whose attempt is no longer current is dropped.
        self._attempts: dict[int, int] = {}
        self._attempt_seq = 0

    # ---- public API ----

    async def submit(
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
        """Enqueue a new upload and return the stored row (does not wait for the upload)."""
        task = self.store.insert(
            key=key,
            image_uri=image_uri,
            file_name=file_name,
            latitude=latitude,
            longitude=longitude,
            quality=quality,
            payload=payload,
        )
        self._observers.setdefault(task.id, [])
        logger.info("Upload %s submitted key=%s fname=%s", task.id, task.key, task.file_name)
        return task

    async def ping(self) -> bool:
        """
        Advance the queue by at most one upload.

        1. An UPLOADING row newer than the TTL horizon means an upload is in
           flight: return True right away.
        2. UPLOADING rows older than the horizon are reclaimed to QUEUED.
        3. No QUEUED row: return True (idle).
        4. Claim the oldest QUEUED row, upload it, and return whether the
           upload succeeded.

        Storage errors propagate. Uploader errors requeue the task. A result
        that arrives after its upload was reclaimed is dropped.
        """
        async with self._claim_lock:
            task = self._claim_next()
            if task is None:
                return True
            self._attempt_seq += 1
            attempt = self._attempts[task.id] = self._attempt_seq

        return await self._upload(task, attempt)

    async def touch(self, task_id: int) -> UploadTask:
        """Keep-alive: refresh updated_at without changing status."""
        task = self.store.touch(task_id)
        logger.debug("Upload %s touched status=%s", task.id, task.status.value)
        return task

    def add_observer(self, task_id: int, callback: Observer) -> None:
        """Attach callback(task, event) to a task; observers fire in registration order."""
        self._observers.setdefault(int(task_id), []).append(callback)

    def remove_observers(self, task_id: int) -> int:
        return len(self._observers.pop(int(task_id), []))

    async def recover(self, visit: Callable[[UploadTask], Any]) -> int:
        """
        Enumerate every persisted upload after a restart.

        visit(task) is called once per row, giving the caller a chance to
        re-attach observers. INIT notifications then go out one row per event
        loop turn, starting after recover() has returned.
        """
        tasks = self.store.list_all()
        logger.info("Recovering %d persisted uploads", len(tasks))

        for task in tasks:
            self._observers.setdefault(task.id, [])
            res = visit(task)
            if inspect.isawaitable(res):
                await res

        loop = asyncio.get_running_loop()
        remaining = iter(tasks)

        def init_next() -> None:
            task = next(remaining, None)
            if task is None:
                return
            loop.call_soon(init_next)
            self._fire(task, UploadEvent.INIT)

        loop.call_soon(init_next)
        return len(tasks)

    async def reset(self) -> int:
        """Empty the queue, forget observers and drop a pending scheduled ping."""
        self._cancel_scheduled_ping()
        deleted = self.store.clear()
        self._observers.clear()
        self._attempts.clear()
        logger.info("Upload queue reset deleted=%s", deleted)
        return deleted

    def pending(self) -> int:
        """Uploads not yet DONE."""
        return self.store.count(UploadStatus.QUEUED) + self.store.count(UploadStatus.UPLOADING)

    def ping_later(self, delay_seconds: float | None = None) -> None:
        """
        Schedule ping() on the running loop after delay_seconds
        (drain_delay_seconds if omitted). Replaces a ping that is already pending.
        """
        if delay_seconds is None:
            delay_seconds = self.drain_delay_seconds
        loop = asyncio.get_running_loop()
        self._cancel_scheduled_ping()
        self._ping_handle = loop.call_later(max(0.0, float(delay_seconds)), self._spawn_ping)
        logger.debug("Next ping scheduled in %.3fs", delay_seconds)

    def close(self) -> None:
        """Cancel the pending scheduled ping and any ping still running in the background."""
        self._cancel_scheduled_ping()
        for t in list(self._background):
            t.cancel()

    # ---- state machine ----

    def _claim_next(self) -> UploadTask | None:
        horizon = self._clock() - self.ttl_seconds

        active = self.store.find_by_status(UploadStatus.UPLOADING, newer_than=horizon)
        logger.debug("ping: active uploads=%d", len(active))
        if active:
            return None

        expired = self.store.find_by_status(UploadStatus.UPLOADING, older_than=horizon)
        logger.debug("ping: expired uploads=%d", len(expired))
        for stale in expired:
            # Whatever the old transfer reports from now on is ignored.
            self._attempts.pop(stale.id, None)
            requeued = self._transition(stale.id, UploadStatus.QUEUED, expected=UploadStatus.UPLOADING)
            if requeued is not None:
                logger.warning(
                    "Upload %s stalled for more than %.0fs; requeued", requeued.id, self.ttl_seconds
                )

        nxt = self.store.next_queued()
        if nxt is None:
            logger.debug("ping: queue idle")
            return None

        return self._transition(nxt.id, UploadStatus.UPLOADING, expected=UploadStatus.QUEUED)

    async def _upload(self, task: UploadTask, attempt: int) -> bool:
        logger.info("Upload %s -> uploading fname=%s attempt=%s", task.id, task.file_name, attempt)
        try:
            await self.uploader.upload(
                image_uri=task.image_uri,
                file_name=task.file_name,
                latitude=task.latitude,
                longitude=task.longitude,
                quality=task.quality,
                payload=task.payload,
                keepalive=self._make_keepalive(task.id, attempt),
            )
        except Exception:
            logger.warning("Upload %s failed attempt=%s", task.id, attempt, exc_info=True)
            if self._finish(task.id, attempt, UploadStatus.QUEUED) is not None:
                logger.info("Upload %s requeued", task.id)
                self._reschedule(self.retry_delay_seconds)
            return False

        if self._finish(task.id, attempt, UploadStatus.DONE) is not None:
            logger.info("Upload %s -> done", task.id)
            self._reschedule(self.drain_delay_seconds)
        return True

    def _finish(self, task_id: int, attempt: int, status: UploadStatus) -> UploadTask | None:
        if self._attempts.get(task_id) != attempt:
            logger.warning(
                "Upload %s attempt=%s was superseded; dropping late %s result",
                task_id,
                attempt,
                status.value,
            )
            return None
        del self._attempts[task_id]

        task = self._transition(task_id, status, expected=UploadStatus.UPLOADING)
        if task is None:
            logger.warning(
                "Upload %s is no longer UPLOADING; dropping late %s result", task_id, status.value
            )
        return task

    def _transition(
            self, task_id: int, status: UploadStatus, *, expected: UploadStatus
    ) -> UploadTask | None:
        task = self.store.try_update_status(task_id, status, expected=expected)
        if task is not None:
            self._notify(task, UploadEvent.STATUS_CHANGE)
        return task

    def _make_keepalive(self, task_id: int, attempt: int) -> Keepalive:
        # Throttled: a chatty transport should not turn into a write per chunk.
        interval = self.ttl_seconds / 4.0
        last = [self._clock()]
        lock = threading.Lock()

        def keepalive() -> None:
            if self._attempts.get(task_id) != attempt:
                return
            now = self._clock()
            with lock:
                if now - last[0] < interval:
                    return
                last[0] = now
            try:
                if self.store.try_touch(task_id, expected=UploadStatus.UPLOADING) is None:
                    logger.debug("keepalive skipped task_id=%s: no longer uploading", task_id)
            except Exception:
                logger.exception("keepalive touch failed task_id=%s", task_id)

        return keepalive

    # ---- notifications ----

    def _notify(self, task: UploadTask, event: UploadEvent) -> None:
        asyncio.get_running_loop().call_soon(self._fire, task, event)

    def _fire(self, task: UploadTask, event: UploadEvent) -> None:
        for callback in list(self._observers.get(task.id, ())):
            try:
                res = callback(task, event)
                if inspect.isawaitable(res):
                    self._track(asyncio.ensure_future(res))
            except Exception:
                logger.exception("Observer failed task_id=%s event=%s", task.id, event.value)

    # ---- scheduling ----

    def _reschedule(self, delay_seconds: float) -> None:
        if self.auto_ping:
            self.ping_later(delay_seconds)

    def _cancel_scheduled_ping(self) -> None:
        if self._ping_handle is not None:
            self._ping_handle.cancel()
            self._ping_handle = None

    def _spawn_ping(self) -> None:
        self._ping_handle = None
        self._track(asyncio.ensure_future(self.ping()))

    def _track(self, fut: asyncio.Future[Any]) -> None:
        self._background.add(fut)
        fut.add_done_callback(self._on_background_done)

    def _on_background_done(self, fut: asyncio.Future[Any]) -> None:
        self._background.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Background ping/observer failed", exc_info=exc)
