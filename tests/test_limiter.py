"""Tests for the setup server's attempt limiter."""

from __future__ import annotations

import threading

import pytest

from deputy.auth.limiter import RateLimiter
from deputy.exceptions import RateLimitError


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

class TestCheck:
    def test_allows_up_to_max_attempts(self):
        limiter = RateLimiter(3, 60, clock=FakeClock())
        for _ in range(3):
            limiter.check("127.0.0.1", "/validate")

    def test_rejects_attempt_after_max(self):
        limiter = RateLimiter(3, 60, clock=FakeClock())
        for _ in range(3):
            limiter.check("127.0.0.1", "/validate")
        with pytest.raises(RateLimitError, match="too many attempts"):
            limiter.check("127.0.0.1", "/validate")

    def test_keeps_rejecting_inside_window(self):
        limiter = RateLimiter(1, 60, clock=FakeClock())
        limiter.check("127.0.0.1", "/submit")
        for _ in range(5):
            with pytest.raises(RateLimitError):
                limiter.check("127.0.0.1", "/submit")

    def test_endpoints_counted_separately(self):
        limiter = RateLimiter(2, 60, clock=FakeClock())
        limiter.check("127.0.0.1", "/validate")
        limiter.check("127.0.0.1", "/validate")
        limiter.check("127.0.0.1", "/submit")
        limiter.check("127.0.0.1", "/submit")
        with pytest.raises(RateLimitError):
            limiter.check("127.0.0.1", "/validate")

    def test_clients_counted_separately(self):
        limiter = RateLimiter(1, 60, clock=FakeClock())
        limiter.check("127.0.0.1", "/validate")
        limiter.check("127.0.0.2", "/validate")
        with pytest.raises(RateLimitError):
            limiter.check("127.0.0.1", "/validate")

    def test_window_expiry_resets_count(self):
        clock = FakeClock()
        limiter = RateLimiter(2, 60, clock=clock)
        limiter.check("127.0.0.1", "/validate")
        limiter.check("127.0.0.1", "/validate")

        clock.now += 61
        limiter.check("127.0.0.1", "/validate")
        limiter.check("127.0.0.1", "/validate")
        with pytest.raises(RateLimitError):
            limiter.check("127.0.0.1", "/validate")

    def test_window_measured_from_first_attempt(self):
        clock = FakeClock()
        limiter = RateLimiter(2, 60, clock=clock)
        limiter.check("127.0.0.1", "/validate")
        clock.now += 50
        limiter.check("127.0.0.1", "/validate")
        clock.now += 5
        with pytest.raises(RateLimitError):
            limiter.check("127.0.0.1", "/validate")

    def test_concurrent_checks_never_exceed_limit(self):
        limiter = RateLimiter(10, 60)
        allowed = []
        lock = threading.Lock()

        def attempt():
            try:
                limiter.check("127.0.0.1", "/submit")
            except RateLimitError:
                return
            with lock:
                allowed.append(1)

        threads = [threading.Thread(target=attempt) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(allowed) == 10


# ---------------------------------------------------------------------------
# cleanup
# ---------------------------------------------------------------------------

class TestCleanup:
    def test_removes_expired_entries(self):
        clock = FakeClock()
        limiter = RateLimiter(5, 60, clock=clock)
        limiter.check("127.0.0.1", "/validate")
        limiter.check("127.0.0.2", "/validate")
        assert len(limiter) == 2

        clock.now += 61
        limiter.cleanup()
        assert len(limiter) == 0

    def test_keeps_live_entries(self):
        clock = FakeClock()
        limiter = RateLimiter(5, 60, clock=clock)
        limiter.check("127.0.0.1", "/validate")
        clock.now += 30
        limiter.check("127.0.0.2", "/validate")

        clock.now += 31
        limiter.cleanup()
        assert len(limiter) == 1

    def test_background_cleanup_stops_on_event(self):
        clock = FakeClock()
        limiter = RateLimiter(5, 60, clock=clock)
        limiter.check("127.0.0.1", "/validate")
        clock.now += 61

        stop = threading.Event()
        thread = limiter.start_cleanup(0.01, stop)
        try:
            for _ in range(100):
                if len(limiter) == 0:
                    break
                threading.Event().wait(0.01)
            assert len(limiter) == 0
        finally:
            stop.set()
            thread.join(1)
        assert not thread.is_alive()
