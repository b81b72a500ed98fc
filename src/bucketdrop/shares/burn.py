"""Deferred deletion of burn-after-download shares."""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable

from bucketdrop.core.exceptions import StorageIOError
from bucketdrop.storage.base import ShareStore

logger = logging.getLogger(__name__)


@dataclass
class BurnJob:
    bucket_id: str
    share_id: str
    due_at: float


class BurnQueue:
    """Deletes consumed shares on a worker thread after a short delay.

    The delay gives buffered response bytes time to leave the process before the
    files go away. It is an ordering heuristic, not a transactional guarantee:
    deletion happens after the stream was fully handed to the transport, and
    open file handles keep working after unlink on POSIX filesystems anyway.
    """

    def __init__(
        self,
        store: ShareStore,
        delay: Callable[[], float],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.delay = delay
        self.clock = clock
        self._queue: queue.Queue[BurnJob | None] = queue.Queue()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._consumed: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    def enqueue(self, bucket_id: str, share_id: str) -> None:
        """Mark a share consumed and schedule its deletion."""
        with self._lock:
            self._consumed.add((bucket_id, share_id))
        self._queue.put(BurnJob(bucket_id, share_id, due_at=self.clock() + self.delay()))
        logger.info(
            "Share scheduled for burn",
            extra={"bucket_id": bucket_id, "share_id": share_id},
        )

    def is_consumed(self, bucket_id: str, share_id: str) -> bool:
        with self._lock:
            return (bucket_id, share_id) in self._consumed

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="burn-queue", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the worker; jobs still waiting for their delay are run first."""
        if self._thread is None:
            return
        self._stop.set()
        self._queue.put(None)
        self._thread.join(timeout)
        self._thread = None

    def join(self) -> None:
        """Block until every enqueued deletion has run."""
        self._queue.join()

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    if self._stop.is_set() and self._queue.empty():
                        return
                    continue
                wait = job.due_at - self.clock()
                if wait > 0 and not self._stop.is_set():
                    self._stop.wait(wait)
                self._burn(job)
            finally:
                self._queue.task_done()

    def _burn(self, job: BurnJob) -> None:
        try:
            self.store.delete(job.bucket_id, job.share_id)
        except StorageIOError as e:
            # Stays marked consumed; the expiry sweep removes it later
            logger.error(
                "Failed to burn share",
                extra={"bucket_id": job.bucket_id, "share_id": job.share_id, "error": str(e)},
            )
            return
        with self._lock:
            self._consumed.discard((job.bucket_id, job.share_id))
