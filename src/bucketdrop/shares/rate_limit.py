"""Per-client fixed-window request throttle."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from bucketdrop.core.config import Settings

logger = logging.getLogger(__name__)

# Prune expired entries once the table grows past this many clients
PRUNE_THRESHOLD = 10_000


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """In-memory, single-process rate limiter.

    Each client gets ``rate_limit_requests`` requests per window of
    ``rate_limit_window_seconds``; both are read from the live settings on every
    call. Best effort only: state is lost on restart and not shared between
    processes.
    """

    def __init__(self, settings: Callable[[], Settings], clock: Callable[[], float] = time.monotonic):
        self.settings = settings
        self.clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def allow(self, client_id: str) -> bool:
        settings = self.settings()
        now = self.clock()
        with self._lock:
            entry = self._entries.get(client_id)
            if entry is None or now >= entry.reset_at:
                if len(self._entries) >= PRUNE_THRESHOLD:
                    self._prune(now)
                self._entries[client_id] = RateLimitEntry(
                    count=1, reset_at=now + settings.rate_limit_window_seconds
                )
                return True

            entry.count += 1
            allowed = entry.count <= settings.rate_limit_requests

        if not allowed:
            logger.warning("Rate limit exceeded", extra={"client_id": client_id})
        return allowed

    def retry_after(self, client_id: str) -> float:
        """Seconds until the client's current window resets."""
        with self._lock:
            entry = self._entries.get(client_id)
            if entry is None:
                return 0.0
            return max(entry.reset_at - self.clock(), 0.0)

    def _prune(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now >= entry.reset_at]
        for key in expired:
            del self._entries[key]
