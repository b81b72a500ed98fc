"""Background expiry of shares older than the configured TTL."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from bucketdrop.core.config import Settings
from bucketdrop.core.exceptions import StorageIOError
from bucketdrop.storage.base import ShareStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    staging_removed: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpirySweeper:
    """Deletes expired shares across all buckets.

    A share is expired once ``now - created_at`` is strictly greater than the
    TTL. Abandoned staging directories older than the TTL go too. Shares with a
    download in flight are left for the next sweep, and any storage error only
    skips the affected bucket or share.
    """

    def __init__(
        self,
        store: ShareStore,
        settings: Callable[[], Settings],
        is_busy: Callable[[str, str], bool] = lambda bucket_id, share_id: False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.settings = settings
        self.is_busy = is_busy
        self.clock = clock

    def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or self.clock()
        ttl = timedelta(seconds=self.settings().share_ttl_seconds)
        report = SweepReport()

        try:
            report.staging_removed = self.store.purge_staging(older_than=now - ttl)
        except StorageIOError as e:
            logger.warning("Could not purge staging area", extra={"error": str(e)})
            report.errors += 1

        try:
            buckets = self.store.list_buckets()
        except StorageIOError as e:
            logger.error("Expiry sweep could not list buckets", extra={"error": str(e)})
            report.errors += 1
            return report

        for bucket_id in buckets:
            try:
                shares = self.store.list_shares(bucket_id)
            except StorageIOError as e:
                logger.warning(
                    "Skipping bucket during expiry sweep",
                    extra={"bucket_id": bucket_id, "error": str(e)},
                )
                report.errors += 1
                continue

            for record in shares:
                report.scanned += 1
                if now - record.created_at <= ttl:
                    continue
                if self.is_busy(bucket_id, record.share_id):
                    logger.info(
                        "Expired share is being downloaded, deferring",
                        extra={"bucket_id": bucket_id, "share_id": record.share_id},
                    )
                    report.skipped += 1
                    continue
                try:
                    if self.store.delete(bucket_id, record.share_id):
                        report.deleted += 1
                except StorageIOError as e:
                    logger.warning(
                        "Failed to delete expired share",
                        extra={"bucket_id": bucket_id, "share_id": record.share_id, "error": str(e)},
                    )
                    report.errors += 1

        logger.info(
            "Expiry sweep finished",
            extra={
                "scanned": report.scanned,
                "deleted": report.deleted,
                "skipped": report.skipped,
                "errors": report.errors,
                "staging_removed": report.staging_removed,
            },
        )
        return report

    async def run(self, stop: asyncio.Event) -> None:
        """Sweep immediately, then every ``sweep_interval_seconds`` until stopped."""
        while not stop.is_set():
            try:
                await asyncio.to_thread(self.sweep)
            except Exception as e:
                # Keep the schedule alive whatever a single sweep hits
                logger.error("Expiry sweep failed", extra={"error": str(e)}, exc_info=True)

            try:
                await asyncio.wait_for(stop.wait(), timeout=self.settings().sweep_interval_seconds)
            except asyncio.TimeoutError:
                pass
