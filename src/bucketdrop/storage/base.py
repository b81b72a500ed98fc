"""Abstract share storage interface and the records it exchanges."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO


@dataclass
class UploadItem:
    """One incoming file of an upload request."""

    name: str
    content_type: str
    size_bytes: int
    data: BinaryIO


@dataclass
class StoredFile:
    """A file persisted inside a share."""

    name: str
    size_bytes: int
    content_type: str
    path: Path
    modified_at: datetime


@dataclass
class ShareRecord:
    """Metadata of a persisted share."""

    bucket_id: str
    share_id: str
    created_at: datetime
    burn_after_download: bool = False
    files: list[StoredFile] = field(default_factory=list)

    @property
    def size_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files)


@dataclass
class StorageStats:
    """Totals across all buckets."""

    buckets: int
    shares: int
    total_bytes: int


class ShareStore(ABC):
    """Abstract base class for share storage backends."""

    @abstractmethod
    def create(self, bucket_id: str, files: list[UploadItem], burn: bool) -> ShareRecord:
        """Persist a new share atomically.

        Args:
            bucket_id: Bucket owning the share
            files: Files to write, already validated by the caller
            burn: Whether the share is deleted after its first download

        Returns:
            Record of the created share

        Raises:
            BadRequestError: If a file name is unusable
            StorageIOError: If writing fails; nothing is left behind
        """
        pass

    @abstractmethod
    def list_buckets(self) -> list[str]:
        """Return the ids of all buckets currently holding shares."""
        pass

    @abstractmethod
    def list_shares(self, bucket_id: str) -> list[ShareRecord]:
        """Return the shares of a bucket; unreadable shares are skipped."""
        pass

    @abstractmethod
    def open(self, bucket_id: str, share_id: str) -> ShareRecord:
        """Resolve a share for reading.

        Raises:
            ShareNotFoundError: If the share does not exist or holds no files
        """
        pass

    @abstractmethod
    def delete(self, bucket_id: str, share_id: str) -> bool:
        """Remove a share, and its bucket if left empty.

        Idempotent. Returns True when something was removed.
        """
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass

    def stats(self) -> StorageStats:
        """Count buckets, shares and bytes across the whole store."""
        buckets = self.list_buckets()
        shares = 0
        total_bytes = 0
        for bucket_id in buckets:
            records = self.list_shares(bucket_id)
            shares += len(records)
            total_bytes += sum(r.size_bytes for r in records)
        return StorageStats(buckets=len(buckets), shares=shares, total_bytes=total_bytes)

    def purge_staging(self, older_than: datetime) -> int:
        """Remove abandoned partial uploads last touched before ``older_than``.

        Backends without a staging area have nothing to purge.
        """
        return 0
