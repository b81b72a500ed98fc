"""Configuration management for bucketdrop."""

import asyncio
import logging
import os
import threading
from pathlib import Path

from pydantic import ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "./config.toml"


def config_path() -> Path:
    """Return the TOML config file location (``CONFIG_PATH`` env var)."""
    return Path(os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH))


class Settings(BaseSettings):
    """Application settings loaded from the environment and the TOML config file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    env: str = "local"
    service_name: str = "bucketdrop"
    service_version: str = "0.1.0"
    log_level: str = "INFO"

    # Server
    port: int = 3001
    data_dir: str = "./data"
    public_base_url: str = ""
    cors_origins: list[str] = ["*"]

    # Access
    passwords: list[str] = []

    # Limits
    max_file_size_bytes: int = 100 * 1024 * 1024
    max_bucket_size_bytes: int = 1024 * 1024 * 1024
    share_ttl_seconds: int = 24 * 60 * 60

    # Background work
    sweep_interval_seconds: float = 3600
    burn_delay_seconds: float = 5.0
    config_reload_interval_seconds: float = 2.0

    # Rate limiting (quota and upload endpoints)
    rate_limit_requests: int = 30
    rate_limit_window_seconds: float = 60

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=config_path()),
            file_secret_settings,
        )

    @property
    def uploads_dir(self) -> Path:
        """Root directory holding one sub-directory per bucket."""
        return Path(self.data_dir) / "uploads"

    @property
    def staging_dir(self) -> Path:
        """Scratch directory for shares that are still being written."""
        return Path(self.data_dir) / "staging"


class SettingsStore:
    """Owns the current settings snapshot and swaps it atomically on reload.

    Components never hold on to a ``Settings`` instance; they call ``get()`` each
    time they need a value so that reloaded limits apply immediately.
    """

    def __init__(self, settings: Settings | None = None):
        self._lock = threading.Lock()
        self._current = settings if settings is not None else Settings()

    def get(self) -> Settings:
        return self._current

    def replace(self, settings: Settings) -> None:
        with self._lock:
            self._current = settings

    def reload(self) -> Settings:
        """Re-read all sources, keeping the previous snapshot if they are invalid."""
        try:
            fresh = Settings()
        except (ValidationError, ValueError, OSError) as e:
            logger.error(
                "Configuration reload failed, keeping previous settings",
                extra={"error": str(e)},
            )
            return self._current

        self.replace(fresh)
        logger.info("Configuration reloaded", extra={"config_path": str(config_path())})
        return fresh


class ConfigWatcher:
    """Polls the TOML config file and reloads the store when it changes."""

    def __init__(self, store: SettingsStore, path: Path | None = None):
        self.store = store
        self.path = path or config_path()
        self._last_mtime = self._mtime()

    def _mtime(self) -> float | None:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    def check(self) -> bool:
        """Reload if the file's mtime moved. Returns True when a reload happened."""
        mtime = self._mtime()
        if mtime == self._last_mtime:
            return False
        self._last_mtime = mtime
        self.store.reload()
        return True

    async def run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            interval = self.store.get().config_reload_interval_seconds
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self.check()


# Singleton settings store; read through settings_store.get()
settings_store = SettingsStore()


def get_settings() -> Settings:
    """Accessor for the current settings snapshot."""
    return settings_store.get()
