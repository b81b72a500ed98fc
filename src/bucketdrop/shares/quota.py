"""Per-bucket storage quota accounting."""

import logging
from dataclasses import dataclass
from typing import Callable

from bucketdrop.core.config import Settings
from bucketdrop.storage.base import ShareStore

logger = logging.getLogger(__name__)


@dataclass
class QuotaUsage:
    """Current usage of a bucket."""

    used: int
    max: int

    @property
    def available(self) -> int:
        return max(self.max - self.used, 0)


@dataclass
class QuotaCheck:
    """Outcome of checking an incoming upload against the quota."""

    allowed: bool
    used_bytes: int
    max_bytes: int
    available_bytes: int


class QuotaTracker:
    """Computes bucket usage from storage on every call.

    No counter is cached; usage is the sum of the stored shares' file sizes, so
    it cannot drift from what is actually on disk.
    """

    def __init__(self, store: ShareStore, settings: Callable[[], Settings]):
        self.store = store
        self.settings = settings

    def used(self, bucket_id: str) -> int:
        return sum(record.size_bytes for record in self.store.list_shares(bucket_id))

    def usage(self, bucket_id: str) -> QuotaUsage:
        return QuotaUsage(used=self.used(bucket_id), max=self.settings().max_bucket_size_bytes)

    def check(self, bucket_id: str, incoming_bytes: int) -> QuotaCheck:
        """Decide whether ``incoming_bytes`` more fit into the bucket.

        Must run before anything of the new share is written.
        """
        usage = self.usage(bucket_id)
        allowed = usage.used + incoming_bytes <= usage.max
        if not allowed:
            logger.info(
                "Quota check rejected upload",
                extra={
                    "bucket_id": bucket_id,
                    "used_bytes": usage.used,
                    "max_bytes": usage.max,
                    "incoming_bytes": incoming_bytes,
                },
            )
        return QuotaCheck(
            allowed=allowed,
            used_bytes=usage.used,
            max_bytes=usage.max,
            available_bytes=usage.available,
        )
