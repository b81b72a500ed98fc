"""Print a one-line summary of stored shares.

Usage: ``python -m bucketdrop.status`` (reads the same configuration as the server).
"""

import sys

from bucketdrop.core.config import get_settings
from bucketdrop.core.exceptions import StorageIOError
from bucketdrop.storage.base import StorageStats
from bucketdrop.storage.local import LocalShareStore


def format_bytes(size: int) -> str:
    """Human readable size with one decimal: B, KB, MB or GB."""
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.1f}MB"
    return f"{size / 1024 / 1024 / 1024:.1f}GB"


def format_stats(stats: StorageStats) -> str:
    plural = "" if stats.buckets == 1 else "s"
    return (
        f"shares: {stats.shares} across {stats.buckets} bucket{plural}, "
        f"{format_bytes(stats.total_bytes)} on disk"
    )


def main() -> int:
    settings = get_settings()
    store = LocalShareStore(settings.uploads_dir, settings.staging_dir)
    try:
        stats = store.stats()
    except StorageIOError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(format_stats(stats))
    return 0


if __name__ == "__main__":
    sys.exit(main())
