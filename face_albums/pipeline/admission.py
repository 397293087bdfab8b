"""
Admission control for cache misses.

A scan may cap how many photos it sends to the recognition service. The cap
is enforced with explicit permits: a worker reserves one before calling the
service, then either commits it (the call produced a record) or releases it
(the call failed). In-flight reservations count against the cap, so racing
workers can never overshoot it.
"""
import threading
from typing import Optional


class NewScanBudget:
    def __init__(self, limit: Optional[int] = None):
        if limit is not None and limit < 0:
            raise ValueError("limit must not be negative")
        self.limit = limit
        self._lock = threading.Lock()
        self._in_flight = 0
        self._completed = 0

    def try_acquire(self) -> bool:
        with self._lock:
            if self.limit is not None and self._completed + self._in_flight >= self.limit:
                return False
            self._in_flight += 1
            return True

    def commit(self):
        with self._lock:
            if self._in_flight == 0:
                raise RuntimeError("commit() without a matching try_acquire()")
            self._in_flight -= 1
            self._completed += 1

    def release(self):
        with self._lock:
            if self._in_flight == 0:
                raise RuntimeError("release() without a matching try_acquire()")
            self._in_flight -= 1

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def saturated(self) -> bool:
        """No permit can be granted until an in-flight one is released."""
        with self._lock:
            return self.limit is not None and self._completed + self._in_flight >= self.limit

    @property
    def exhausted(self) -> bool:
        """No permit will ever be granted again."""
        with self._lock:
            return self.limit is not None and self._completed >= self.limit
