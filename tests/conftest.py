"""Pytest configuration and shared fixtures."""

import io

import pytest

from bucketdrop.core.config import Settings, SettingsStore
from bucketdrop.shares.service import ShareService
from bucketdrop.storage.base import UploadItem
from bucketdrop.storage.local import LocalShareStore

MB = 1024 * 1024


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point CONFIG_PATH at a file that does not exist so no local config leaks in."""
    monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "missing-config.toml"))


@pytest.fixture
def settings(tmp_path):
    """Settings with a temporary data directory and small limits."""
    return Settings(
        data_dir=str(tmp_path / "data"),
        passwords=["alpha-pass", "beta-pass"],
        max_file_size_bytes=20 * MB,
        max_bucket_size_bytes=10 * MB,
        share_ttl_seconds=3600,
        burn_delay_seconds=0,
        rate_limit_requests=3,
        rate_limit_window_seconds=60,
    )


@pytest.fixture
def settings_store(settings):
    return SettingsStore(settings)


@pytest.fixture
def share_store(settings):
    """Local share store rooted in the temporary data directory."""
    return LocalShareStore(settings.uploads_dir, settings.staging_dir)


@pytest.fixture
def service(share_store, settings_store):
    """Share service with a running burn queue."""
    service = ShareService(share_store, settings_store.get)
    service.burn_queue.start()
    yield service
    service.burn_queue.stop()


@pytest.fixture
def make_item():
    """Factory for in-memory upload items."""

    def _make(name: str, content: bytes, content_type: str = "application/octet-stream") -> UploadItem:
        return UploadItem(
            name=name,
            content_type=content_type,
            size_bytes=len(content),
            data=io.BytesIO(content),
        )

    return _make
