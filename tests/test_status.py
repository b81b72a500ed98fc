"""Tests for the storage status report."""

import pytest

from bucketdrop import status
from bucketdrop.status import format_bytes, format_stats
from bucketdrop.storage.base import StorageStats


@pytest.mark.parametrize(
    "size,expected",
    [
        (0, "0B"),
        (1023, "1023B"),
        (1536, "1.5KB"),
        (int(9.5 * 1024 * 1024), "9.5MB"),
        (2 * 1024 * 1024 * 1024, "2.0GB"),
    ],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


def test_format_stats_pluralizes_buckets():
    assert format_stats(StorageStats(buckets=1, shares=3, total_bytes=2048)) == (
        "shares: 3 across 1 bucket, 2.0KB on disk"
    )
    assert format_stats(StorageStats(buckets=0, shares=0, total_bytes=0)) == (
        "shares: 0 across 0 buckets, 0B on disk"
    )


def test_main_prints_summary(settings, share_store, make_item, monkeypatch, capsys):
    share_store.create("bucketaaa", [make_item("a", b"x" * 100)], burn=False)
    share_store.create("bucketbbb", [make_item("b", b"y" * 50), make_item("c", b"z")], burn=False)
    monkeypatch.setattr(status, "get_settings", lambda: settings)

    assert status.main() == 0

    assert capsys.readouterr().out.strip() == "shares: 2 across 2 buckets, 151B on disk"
