"""
Boundary to the external face recognition service.

The service client itself lives outside this package. Anything with a
`search_method` attribute and a `search(image_path) -> SearchResult` method
can be plugged in; the CLI loads one from a `module:factory` string.

A photo with no detectable face is an ordinary outcome: implementations
return an empty SearchResult for it and raise only for real failures
(transport, auth, throttling that outlived retries).
"""
import time
import logging
import importlib
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, Callable, Iterator, Optional, runtime_checkable

from .. import config
from ..exceptions import RecognitionError
from ..models import SearchResult, SearchDiagnostics


@runtime_checkable
class RecognitionGateway(Protocol):
    search_method: str

    def search(self, image_path: Path) -> SearchResult:
        ...


def no_face_result() -> SearchResult:
    return SearchResult(matches=[], diagnostics=SearchDiagnostics(face_detected=False))


class RateLimiter:
    """
    Enforces the service's rate contract across threads: call starts are at
    least `min_interval` seconds apart and at most `max_concurrent` calls run
    at once.
    """
    def __init__(self,
                 min_interval: float = config.RATE_LIMIT_MIN_INTERVAL,
                 max_concurrent: int = config.RATE_LIMIT_MAX_CONCURRENT,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.min_interval = min_interval
        self.max_concurrent = max_concurrent
        self._clock = clock
        self._sleep = sleep
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._lock = threading.Lock()
        self._next_start = 0.0

    @contextmanager
    def slot(self) -> Iterator[None]:
        self._slots.acquire()
        try:
            with self._lock:
                now = self._clock()
                start = max(now, self._next_start)
                self._next_start = start + self.min_interval
            if start > now:
                self._sleep(start - now)
            yield
        finally:
            self._slots.release()


class RateLimitedGateway:
    """Wraps any gateway so every search goes through a RateLimiter."""
    def __init__(self, gateway: RecognitionGateway, limiter: Optional[RateLimiter] = None):
        self.gateway = gateway
        self.limiter = limiter or RateLimiter()

    @property
    def search_method(self) -> str:
        return self.gateway.search_method

    def search(self, image_path: Path) -> SearchResult:
        with self.limiter.slot():
            return self.gateway.search(image_path)


def load_gateway(factory_ref: str) -> RecognitionGateway:
    """
    Builds a gateway from 'package.module:callable'. The callable takes no
    arguments and returns a RecognitionGateway.
    """
    module_name, sep, attr = factory_ref.partition(':')
    if not sep or not module_name or not attr:
        raise RecognitionError(f"Gateway must be given as module:factory, got {factory_ref!r}")

    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise RecognitionError(f"Cannot load gateway {factory_ref}: {e}") from e

    gateway = factory()
    if gateway.search_method not in config.SEARCH_METHODS:
        raise RecognitionError(f"Unsupported search method: {gateway.search_method}")

    logging.info(f"Loaded recognition gateway {factory_ref} ({gateway.search_method})")
    return gateway
