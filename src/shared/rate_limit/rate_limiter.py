"""Fixed-window rate limiting keyed by a normalized submitter identity.

The limiter talks to a RateLimitStore so the in-process dictionary can be
swapped for the shared SQL store (see database.py) without touching the
form handlers. The in-memory store only limits a single process.
"""

import time
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from src.shared.config.settings import DEFAULT_RATE_LIMIT_WINDOW_SECONDS, DEFAULT_RATE_LIMIT_MAX_REQUESTS


@dataclass
class RateLimitRecord:
    """Per-identity counter. Holds only the identity key, never other submission data."""
    identity_key: str
    count: int
    window_reset_at: float


class RateLimitStore(Protocol):
    """Storage contract for rate-limit counters."""

    def check_and_increment(self, identity_key: str, now: float,
                            window_seconds: float, max_requests: int) -> bool:
        """Atomically apply one submission to the counter; return True if allowed."""
        ...

    def delete_expired(self, now: float) -> int:
        ...

    def count(self) -> int:
        ...


def apply_submission(record: Optional[RateLimitRecord], identity_key: str, now: float,
                     window_seconds: float, max_requests: int):
    """
    Pure window transition shared by every store.

    Returns:
        Tuple of (allowed, record to keep)
    """
    if record is None or now >= record.window_reset_at:
        return True, RateLimitRecord(identity_key, 1, now + window_seconds)
    if record.count >= max_requests:
        return False, record
    record.count += 1
    return True, record


class InMemoryRateLimitStore:
    """Process-local store guarded by a lock held only for the local update."""

    def __init__(self):
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()

    def check_and_increment(self, identity_key: str, now: float,
                            window_seconds: float, max_requests: int) -> bool:
        with self._lock:
            allowed, record = apply_submission(
                self._records.get(identity_key), identity_key, now, window_seconds, max_requests
            )
            self._records[identity_key] = record
            return allowed

    def delete_expired(self, now: float) -> int:
        # Snapshot first, then take the lock per record so requests are not
        # blocked for the whole sweep.
        with self._lock:
            candidates = [key for key, record in self._records.items() if now >= record.window_reset_at]
        removed = 0
        for key in candidates:
            with self._lock:
                record = self._records.get(key)
                if record is not None and now >= record.window_reset_at:
                    del self._records[key]
                    removed += 1
        return removed

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def get(self, identity_key: str) -> Optional[RateLimitRecord]:
        with self._lock:
            record = self._records.get(identity_key)
            if record is None:
                return None
            return RateLimitRecord(record.identity_key, record.count, record.window_reset_at)


class RateLimiter:
    """
    Allows at most max_requests submissions per identity per window.

    Idle -> Counting -> Limited -> (window expiry) -> Idle. A denied
    submission does not extend the window.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        window_seconds: float = DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_RATE_LIMIT_MAX_REQUESTS,
        clock: Callable[[], float] = time.time,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock

    def check_and_increment(self, identity_key: str) -> bool:
        """Record a submission for identity_key and report whether it is allowed."""
        return self.store.check_and_increment(
            identity_key, self._clock(), self.window_seconds, self.max_requests
        )

    def sweep(self) -> int:
        """Delete every record whose window has ended."""
        return self.store.delete_expired(self._clock())


class RateLimitSweeper:
    """Background thread that sweeps expired records on a fixed interval."""

    def __init__(self, limiter: RateLimiter, interval_seconds: Optional[float] = None):
        self.limiter = limiter
        self.interval_seconds = interval_seconds or limiter.window_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="rate-limit-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                removed = self.limiter.sweep()
                if removed:
                    logging.debug(f"Rate limit sweep removed {removed} expired records")
            except Exception as e:
                # Keep sweeping; a failed pass is retried on the next interval
                logging.error(f"Rate limit sweep failed: {str(e)}", exc_info=True)
