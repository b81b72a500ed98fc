"""Share service: upload, download and quota operations.

Upload:   Received -> PasswordChecked -> QuotaChecked -> Persisted -> LinkIssued
Download: Requested -> Located -> Streamed (file | archive) -> [Burned]

Every failure before ``Persisted`` leaves storage untouched. Burning only
happens after the download stream has been consumed completely, and is carried
out later by the burn queue.
"""

import logging
import secrets
import threading
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterator
from urllib.parse import quote

from bucketdrop.core.config import Settings
from bucketdrop.core.exceptions import (
    BadRequestError,
    FileTooLargeError,
    QuotaExceededError,
    RateLimitedError,
    ShareNotFoundError,
    UnauthorizedError,
)
from bucketdrop.shares.archive import ArchiveEntry, stream_archive
from bucketdrop.shares.burn import BurnQueue
from bucketdrop.shares.quota import QuotaTracker, QuotaUsage
from bucketdrop.shares.rate_limit import FixedWindowRateLimiter
from bucketdrop.shares.resolver import BucketResolver, Sha256BucketResolver
from bucketdrop.shares.sweeper import ExpirySweeper
from bucketdrop.storage.base import ShareRecord, ShareStore, StorageStats, UploadItem

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536  # 64KB


@dataclass
class UploadResult:
    url: str
    share: ShareRecord
    expires_at: datetime


@dataclass
class Download:
    """A located share, ready to be streamed once."""

    filename: str
    media_type: str
    size: int | None
    is_archive: bool
    chunks: Iterator[bytes]


class ActiveDownloads:
    """Counts in-flight downloads per share."""

    def __init__(self):
        self._counts: Counter[tuple[str, str]] = Counter()
        self._lock = threading.Lock()

    def enter(self, bucket_id: str, share_id: str) -> None:
        with self._lock:
            self._counts[(bucket_id, share_id)] += 1

    def exit(self, bucket_id: str, share_id: str) -> None:
        with self._lock:
            key = (bucket_id, share_id)
            self._counts[key] -= 1
            if self._counts[key] <= 0:
                del self._counts[key]

    def is_busy(self, bucket_id: str, share_id: str) -> bool:
        with self._lock:
            return self._counts[(bucket_id, share_id)] > 0


def _iter_file(path, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            yield chunk


class ShareService:
    """Composition root of the share lifecycle."""

    def __init__(
        self,
        store: ShareStore,
        settings: Callable[[], Settings],
        resolver: BucketResolver | None = None,
        burn_queue: BurnQueue | None = None,
        rate_limiter: FixedWindowRateLimiter | None = None,
    ):
        self.store = store
        self.settings = settings
        self.resolver = resolver or Sha256BucketResolver()
        self.quota_tracker = QuotaTracker(store, settings)
        self.burn_queue = burn_queue or BurnQueue(store, delay=lambda: settings().burn_delay_seconds)
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(settings)
        self.active_downloads = ActiveDownloads()
        self.sweeper = ExpirySweeper(store, settings, is_busy=self.active_downloads.is_busy)
        self._bucket_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def authorize(self, password: str | None) -> str:
        """Check the password against the allow-list and return its bucket id."""
        allowed = self.settings().passwords
        if not password or not any(
            secrets.compare_digest(password.encode("utf-8"), candidate.encode("utf-8"))
            for candidate in allowed
        ):
            raise UnauthorizedError("Invalid or missing password")
        return self.resolver.resolve(password)

    def throttle(self, client_id: str) -> None:
        if not self.rate_limiter.allow(client_id):
            raise RateLimitedError(retry_after=self.rate_limiter.retry_after(client_id))

    def upload(self, password: str | None, files: list[UploadItem], burn: bool = False) -> UploadResult:
        bucket_id = self.authorize(password)

        if not files:
            raise BadRequestError("No files provided")

        settings = self.settings()
        for item in files:
            if item.size_bytes > settings.max_file_size_bytes:
                raise FileTooLargeError(
                    f"File {item.name!r} exceeds maximum allowed size of "
                    f"{settings.max_file_size_bytes} bytes"
                )
        incoming = sum(item.size_bytes for item in files)

        with self._bucket_lock(bucket_id):
            check = self.quota_tracker.check(bucket_id, incoming)
            if not check.allowed:
                raise QuotaExceededError(available_bytes=check.available_bytes, requested_bytes=incoming)
            record = self.store.create(bucket_id, files, burn)

        url = self.share_url(record)
        logger.info(
            "Share link issued",
            extra={
                "bucket_id": bucket_id,
                "share_id": record.share_id,
                "size_bytes": record.size_bytes,
                "burn_after_download": record.burn_after_download,
            },
        )
        return UploadResult(
            url=url,
            share=record,
            expires_at=record.created_at + timedelta(seconds=settings.share_ttl_seconds),
        )

    def download(self, bucket_id: str, share_id: str) -> Download:
        if self.burn_queue.is_consumed(bucket_id, share_id):
            raise ShareNotFoundError(f"Share {bucket_id}/{share_id} not found")

        record = self.store.open(bucket_id, share_id)

        if len(record.files) == 1:
            stored = record.files[0]
            return Download(
                filename=stored.name,
                media_type=stored.content_type,
                size=stored.size_bytes,
                is_archive=False,
                chunks=self._stream(record, _iter_file(stored.path)),
            )

        entries = [
            ArchiveEntry.from_path(f.name, f.path, f.size_bytes, f.modified_at) for f in record.files
        ]
        return Download(
            filename=f"{share_id}.zip",
            media_type="application/zip",
            size=None,
            is_archive=True,
            chunks=self._stream(record, stream_archive(entries)),
        )

    def quota(self, password: str | None) -> QuotaUsage:
        bucket_id = self.authorize(password)
        return self.quota_tracker.usage(bucket_id)

    def stats(self) -> StorageStats:
        return self.store.stats()

    def share_url(self, record: ShareRecord) -> str:
        base = self.settings().public_base_url.rstrip("/")
        if len(record.files) == 1:
            name = record.files[0].name
        else:
            name = f"{record.share_id}.zip"
        return f"{base}/d/{record.bucket_id}/{record.share_id}/{quote(name)}"

    def _stream(self, record: ShareRecord, chunks: Iterator[bytes]) -> Iterator[bytes]:
        self.active_downloads.enter(record.bucket_id, record.share_id)
        try:
            yield from chunks
        finally:
            self.active_downloads.exit(record.bucket_id, record.share_id)

        # Only reached once the consumer took the last chunk
        logger.info(
            "Download completed",
            extra={"bucket_id": record.bucket_id, "share_id": record.share_id},
        )
        if record.burn_after_download:
            self.burn_queue.enqueue(record.bucket_id, record.share_id)

    def _bucket_lock(self, bucket_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._bucket_locks.setdefault(bucket_id, threading.Lock())
