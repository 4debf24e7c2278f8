"""Per-client attempt limiting for the setup server.

Counts attempts per (client address, endpoint) in a fixed window that starts
at the first attempt. Expired entries are replaced on the next ``check`` or
dropped by the periodic ``cleanup``. A client can get up to twice the
limit across a window boundary.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from ..exceptions import RateLimitError
from .constants import ERROR_RATE_LIMITED

logger = logging.getLogger(__name__)


@dataclass
class _ClientLimit:
    count: int
    reset_at: float


class RateLimiter:
    """Thread-safe attempt counter keyed by client address and endpoint."""

    def __init__(
        self,
        max_attempts: int,
        window: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window = window
        self._clock = clock
        self._attempts: dict[str, _ClientLimit] = {}
        self._lock = threading.Lock()

    def check(self, client_ip: str, endpoint: str) -> None:
        """Record one attempt.

        Raises:
            RateLimitError: If this attempt exceeds ``max_attempts`` in the window.
        """
        key = f"{client_ip}:{endpoint}"
        with self._lock:
            now = self._clock()

            limit = self._attempts.get(key)
            if limit is not None and now > limit.reset_at:
                del self._attempts[key]
                limit = None

            if limit is None:
                self._attempts[key] = _ClientLimit(count=1, reset_at=now + self.window)
                return

            limit.count += 1
            if limit.count > self.max_attempts:
                logger.debug("rate limit hit for %s", key)
                raise RateLimitError(ERROR_RATE_LIMITED)

    def cleanup(self) -> None:
        """Drop every entry whose window has passed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, limit in self._attempts.items() if now > limit.reset_at]
            for key in expired:
                del self._attempts[key]

    def start_cleanup(self, interval: float, stop: threading.Event) -> threading.Thread:
        """Run :meth:`cleanup` every ``interval`` seconds until ``stop`` is set."""

        def _loop() -> None:
            while not stop.wait(interval):
                self.cleanup()

        thread = threading.Thread(target=_loop, name="rate-limit-cleanup", daemon=True)
        thread.start()
        return thread

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
