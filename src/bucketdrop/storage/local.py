"""Local filesystem share storage backend.

Layout: ``<base_path>/<bucket_id>/<share_id>/<filename>``, with an optional
zero-byte ``.burn`` marker inside the share directory. Shares are written into a
staging directory first and renamed into place once every file is on disk.
"""

import logging
import mimetypes
import os
import re
import secrets
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from tenacity import retry, retry_if_exception_type, stop_after_attempt

from bucketdrop.core.exceptions import BadRequestError, ShareNotFoundError, StorageIOError
from bucketdrop.storage.base import ShareRecord, ShareStore, StoredFile, UploadItem

logger = logging.getLogger(__name__)

BURN_MARKER = ".burn"
CHUNK_SIZE = 65536  # 64KB
MAX_ID_ATTEMPTS = 5
MAX_FILENAME_BYTES = 255

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class ShareIdCollision(Exception):
    """A freshly generated share id is already taken in its bucket."""
    pass


def generate_share_id() -> str:
    """Return a random 8 character URL-safe id."""
    return secrets.token_urlsafe(6)


def sanitize_filename(filename: str) -> str:
    """Reduce an uploaded name to a plain file name inside the share directory.

    Directory components (either separator) are dropped, control characters
    removed and leading dots stripped, so the result can neither traverse out of
    the share nor shadow the burn marker.

    Raises:
        BadRequestError: If nothing usable is left
    """
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _CONTROL_CHARS.sub("", name).strip().lstrip(".")
    name = name.encode("utf-8")[:MAX_FILENAME_BYTES].decode("utf-8", "ignore")
    if not name:
        raise BadRequestError(f"Unusable file name: {filename!r}")
    return name


def is_valid_id(value: str) -> bool:
    return bool(_ID_PATTERN.match(value))


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class LocalShareStore(ShareStore):
    """Share store on the local filesystem."""

    def __init__(self, base_path: Path, staging_path: Path | None = None):
        self.base_path = Path(base_path)
        self.staging_path = Path(staging_path) if staging_path else self.base_path.parent / "staging"

    def create(self, bucket_id: str, files: list[UploadItem], burn: bool) -> ShareRecord:
        if not files:
            raise BadRequestError("No files provided")

        names = [sanitize_filename(item.name) for item in files]
        if len(set(names)) != len(names):
            raise BadRequestError("Duplicate file names in upload")

        staging = None
        try:
            self.staging_path.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix="share-", dir=self.staging_path))

            for item, name in zip(files, names):
                self._write_file(staging / name, item.data)
            if burn:
                (staging / BURN_MARKER).touch()

            share_dir = self._reserve_share_dir(bucket_id)
            try:
                # rename(2) replaces the empty reservation atomically
                os.replace(staging, share_dir)
            except OSError:
                share_dir.rmdir()
                raise
        except (OSError, ShareIdCollision) as e:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)
            logger.error(
                "Failed to persist share",
                extra={"bucket_id": bucket_id, "error": str(e)},
                exc_info=True,
            )
            raise StorageIOError(f"Failed to persist share: {e}") from e

        try:
            record = self._read_share(bucket_id, share_dir)
        except OSError as e:
            raise StorageIOError(f"Failed to read back share {share_dir.name}: {e}") from e

        logger.info(
            "Share persisted",
            extra={
                "bucket_id": bucket_id,
                "share_id": record.share_id,
                "file_count": len(record.files),
                "size_bytes": record.size_bytes,
                "burn_after_download": burn,
            },
        )
        return record

    def list_buckets(self) -> list[str]:
        try:
            return sorted(
                entry.name
                for entry in self.base_path.iterdir()
                if entry.is_dir() and is_valid_id(entry.name)
            )
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageIOError(f"Failed to list buckets: {e}") from e

    def list_shares(self, bucket_id: str) -> list[ShareRecord]:
        if not is_valid_id(bucket_id):
            return []

        try:
            share_dirs = sorted(
                entry for entry in (self.base_path / bucket_id).iterdir() if entry.is_dir()
            )
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageIOError(f"Failed to list bucket {bucket_id}: {e}") from e

        records = []
        for share_dir in share_dirs:
            try:
                records.append(self._read_share(bucket_id, share_dir))
            except FileNotFoundError:
                # Deleted while we were listing
                continue
            except OSError as e:
                logger.warning(
                    "Skipping unreadable share",
                    extra={"bucket_id": bucket_id, "share_id": share_dir.name, "error": str(e)},
                )
        return records

    def open(self, bucket_id: str, share_id: str) -> ShareRecord:
        if not (is_valid_id(bucket_id) and is_valid_id(share_id)):
            raise ShareNotFoundError(f"Share {bucket_id}/{share_id} not found")

        share_dir = self.base_path / bucket_id / share_id
        try:
            record = self._read_share(bucket_id, share_dir)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise ShareNotFoundError(f"Share {bucket_id}/{share_id} not found") from e
        except OSError as e:
            raise StorageIOError(f"Failed to read share {bucket_id}/{share_id}: {e}") from e

        if not record.files:
            raise ShareNotFoundError(f"Share {bucket_id}/{share_id} has no files")
        return record

    def delete(self, bucket_id: str, share_id: str) -> bool:
        if not (is_valid_id(bucket_id) and is_valid_id(share_id)):
            return False

        bucket_dir = self.base_path / bucket_id
        removed = True
        try:
            shutil.rmtree(bucket_dir / share_id)
        except FileNotFoundError:
            removed = False
        except OSError as e:
            raise StorageIOError(f"Failed to delete share {bucket_id}/{share_id}: {e}") from e

        try:
            bucket_dir.rmdir()
            logger.info("Removed empty bucket", extra={"bucket_id": bucket_id})
        except OSError:
            pass  # still holds shares, or already gone

        if removed:
            logger.info("Share deleted", extra={"bucket_id": bucket_id, "share_id": share_id})
        return removed

    def get_backend_name(self) -> str:
        return "local"

    def purge_staging(self, older_than: datetime) -> int:
        try:
            leftovers = [entry for entry in self.staging_path.iterdir() if entry.is_dir()]
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise StorageIOError(f"Failed to list staging area: {e}") from e

        removed = 0
        for entry in leftovers:
            try:
                if _timestamp(entry.stat().st_mtime) >= older_than:
                    continue
                shutil.rmtree(entry)
            except FileNotFoundError:
                # Renamed into place or cleaned up meanwhile
                continue
            except OSError as e:
                logger.warning(
                    "Failed to remove abandoned staging directory",
                    extra={"staging_dir": entry.name, "error": str(e)},
                )
                continue
            removed += 1
            logger.info("Removed abandoned staging directory", extra={"staging_dir": entry.name})
        return removed

    @retry(
        retry=retry_if_exception_type((ShareIdCollision, FileNotFoundError)),
        stop=stop_after_attempt(MAX_ID_ATTEMPTS),
        reraise=True,
    )
    def _reserve_share_dir(self, bucket_id: str) -> Path:
        """Claim a fresh share directory with exclusive-create semantics."""
        share_id = generate_share_id()
        bucket_dir = self.base_path / bucket_id
        bucket_dir.mkdir(parents=True, exist_ok=True)

        share_dir = bucket_dir / share_id
        try:
            share_dir.mkdir()
        except FileExistsError as e:
            logger.warning(
                "Share id collision, retrying",
                extra={"bucket_id": bucket_id, "share_id": share_id},
            )
            raise ShareIdCollision(share_id) from e
        return share_dir

    @staticmethod
    def _write_file(target: Path, data: BinaryIO) -> None:
        with open(target, "xb") as f:
            while chunk := data.read(CHUNK_SIZE):
                f.write(chunk)
            f.flush()
            os.fsync(f.fileno())

    @staticmethod
    def _read_share(bucket_id: str, share_dir: Path) -> ShareRecord:
        created_at = _timestamp(share_dir.stat().st_mtime)
        burn = False
        files = []
        for entry in sorted(share_dir.iterdir(), key=lambda p: p.name):
            if entry.name == BURN_MARKER:
                burn = True
                continue
            if entry.name.startswith(".") or not entry.is_file():
                continue
            stat = entry.stat()
            content_type, _ = mimetypes.guess_type(entry.name)
            files.append(
                StoredFile(
                    name=entry.name,
                    size_bytes=stat.st_size,
                    content_type=content_type or "application/octet-stream",
                    path=entry,
                    modified_at=_timestamp(stat.st_mtime),
                )
            )

        return ShareRecord(
            bucket_id=bucket_id,
            share_id=share_dir.name,
            created_at=created_at,
            burn_after_download=burn,
            files=files,
        )
