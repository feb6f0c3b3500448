"""
audit/writer.py -- Asynchronous, best-effort audit log writer.

add_log() never blocks the caller and never raises. Records go onto an asyncio
queue drained by a single worker task that runs the blocking store write in a
thread. Delivery is at-most-once:

  - a failed write is logged with the record and counted in `failed`, then
    dropped. There is no retry.
  - records still queued when stop() times out are dropped and counted in
    `dropped`.
  - the queue is bounded. A record that finds it full is dropped and counted
    in `dropped`, as is one offered while the loop is shutting down.

The write is never part of the primary mutation's transaction: by the time it
runs, the action has already committed and returned.

Lifecycle is owned by the lifespan in api/main.py: start() inside the
application lifespan, stop() on shutdown.

add_log() returns True when the record was accepted onto the queue and False
when it was dropped up front: writer not running, queue full or loop closed.
It does not report whether the write later
succeeded; that outcome is only visible in the logs and the counters.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from audit.models import LogRecord
from audit.store import LogStore

logger = logging.getLogger("adminboard.audit")


class AuditLogWriter:
    def __init__(self, store: LogStore, maxsize: int = 10_000) -> None:
        self._store = store
        self._maxsize = maxsize
        self._queue: asyncio.Queue[LogRecord] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._lock = threading.Lock()
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the worker on the running event loop. Idempotent."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._task = asyncio.create_task(self._run(), name="audit-log-writer")
        logger.info("Audit log writer started")

    def add_log(self, record: LogRecord) -> bool:
        """Queue one record for writing. Safe to call from any thread."""
        with self._lock:
            if not self.running or self._loop is None or self._queue is None:
                logger.error("Audit log writer not running; dropping %s", record.action_type.value)
                self.dropped += 1
                return False
            loop, queue = self._loop, self._queue
        try:
            on_loop = asyncio.get_running_loop() is loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            return self._enqueue(queue, record)
        if queue.full():
            return self._drop(record, "queue full")
        try:
            loop.call_soon_threadsafe(self._enqueue, queue, record)
        except RuntimeError:
            return self._drop(record, "event loop closed")
        return True

    def _enqueue(self, queue: asyncio.Queue, record: LogRecord) -> bool:
        try:
            queue.put_nowait(record)
        except asyncio.QueueFull:
            return self._drop(record, "queue full")
        return True

    def _drop(self, record: LogRecord, reason: str) -> bool:
        with self._lock:
            self.dropped += 1
        logger.error("Audit log %s; dropping %s", reason, record.action_type.value)
        return False

    async def drain(self) -> None:
        """Wait until every record queued so far has been written or dropped."""
        if self._queue is None:
            return
        # Let put_nowait callbacks scheduled from other threads land first.
        await asyncio.sleep(0)
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain for up to timeout seconds, then cancel the worker."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout)
        except asyncio.TimeoutError:
            pending = self._queue.qsize() if self._queue is not None else 0
            self.dropped += pending
            logger.warning("Audit log writer stopped with %d record(s) undelivered", pending)
        with self._lock:
            task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(
            "Audit log writer stopped (delivered=%d failed=%d dropped=%d)",
            self.delivered,
            self.failed,
            self.dropped,
        )

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            record = await self._queue.get()
            try:
                await asyncio.to_thread(self._store.append, record)
            except Exception:
                self.failed += 1
                logger.exception(
                    "Error adding log: type=%s user_id=%s entity_id=%s",
                    record.action_type.value,
                    record.user_id,
                    record.entity_id,
                )
            else:
                self.delivered += 1
            finally:
                self._queue.task_done()
