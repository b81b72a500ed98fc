"""
Share lifecycle

Password-keyed buckets, quota accounting, streamed downloads, burn-after-download
and TTL expiry, composed by ``ShareService``.
"""

from bucketdrop.shares.quota import QuotaCheck, QuotaTracker, QuotaUsage
from bucketdrop.shares.resolver import BucketResolver, Sha256BucketResolver
from bucketdrop.shares.service import Download, ShareService, UploadResult

__all__ = [
    "BucketResolver",
    "Download",
    "QuotaCheck",
    "QuotaTracker",
    "QuotaUsage",
    "Sha256BucketResolver",
    "ShareService",
    "UploadResult",
]
