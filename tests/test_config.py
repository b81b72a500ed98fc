"""Tests for settings loading and live reload."""

import os

import pytest

from bucketdrop.core.config import ConfigWatcher, Settings, SettingsStore

CONFIG = """
port = 4000
data_dir = "{data_dir}"
passwords = ["one", "two"]
max_bucket_size_bytes = {max_bytes}
share_ttl_seconds = 7200
"""


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    monkeypatch.setenv("CONFIG_PATH", str(path))
    return path


def _write_config(path, max_bytes: int, bump_mtime: bool = False) -> None:
    path.write_text(CONFIG.format(data_dir=path.parent / "data", max_bytes=max_bytes))
    if bump_mtime:
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))


def test_defaults_without_config_file():
    settings = Settings()

    assert settings.port == 3001
    assert settings.passwords == []
    assert settings.share_ttl_seconds == 86400


def test_settings_loaded_from_toml(config_file):
    _write_config(config_file, max_bytes=5000)

    settings = Settings()

    assert settings.port == 4000
    assert settings.passwords == ["one", "two"]
    assert settings.max_bucket_size_bytes == 5000
    assert settings.share_ttl_seconds == 7200
    assert settings.uploads_dir == config_file.parent / "data" / "uploads"


def test_environment_overrides_toml(config_file, monkeypatch):
    _write_config(config_file, max_bytes=5000)
    monkeypatch.setenv("PORT", "8080")

    assert Settings().port == 8080


def test_reload_swaps_snapshot(config_file):
    _write_config(config_file, max_bytes=5000)
    store = SettingsStore()
    before = store.get()

    _write_config(config_file, max_bytes=9000)
    store.reload()

    assert before.max_bucket_size_bytes == 5000
    assert store.get().max_bucket_size_bytes == 9000


def test_invalid_reload_keeps_previous(config_file):
    _write_config(config_file, max_bytes=5000)
    store = SettingsStore()

    config_file.write_text('max_bucket_size_bytes = "plenty"\n')
    store.reload()

    assert store.get().max_bucket_size_bytes == 5000


def test_malformed_toml_keeps_previous(config_file):
    _write_config(config_file, max_bytes=5000)
    store = SettingsStore()

    config_file.write_text("max_bucket_size_bytes = = 1\n")
    store.reload()

    assert store.get().max_bucket_size_bytes == 5000


def test_watcher_reloads_on_change(config_file):
    _write_config(config_file, max_bytes=5000)
    store = SettingsStore()
    watcher = ConfigWatcher(store, config_file)

    assert watcher.check() is False

    _write_config(config_file, max_bytes=6000, bump_mtime=True)

    assert watcher.check() is True
    assert store.get().max_bucket_size_bytes == 6000
    assert watcher.check() is False
