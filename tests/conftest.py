import threading
import pytest
import sqlite3
from face_albums.database.schema import init_schema
from face_albums.database.store import PhotoStore
from face_albums.database.dircache import DirectoryCache
from face_albums.database.corrections import CorrectionOverlay
from face_albums.models import GatewayMatch, SearchResult, SearchDiagnostics

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    # Scanner workers touch the connection from pool threads.
    c = sqlite3.connect(":memory:", check_same_thread=False)
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def lock():
    return threading.RLock()

@pytest.fixture
def store(conn, lock):
    """Returns a PhotoStore attached to the in-memory DB."""
    return PhotoStore(conn, lock)

@pytest.fixture
def dir_cache(conn, lock):
    return DirectoryCache(conn, lock)

@pytest.fixture
def overlay(store):
    return CorrectionOverlay(store)


class FakeGateway:
    """
    Recognition gateway stand-in. `answers` maps a file name to the
    (person, confidence) pairs the service would report for it.
    """
    def __init__(self, answers=None, search_method='faces', fail_on=(), delay=0.0):
        self.answers = answers or {}
        self.search_method = search_method
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()

    def search(self, image_path):
        with self._lock:
            self.calls.append(image_path.name)
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.delay:
                threading.Event().wait(self.delay)
            if image_path.name in self.fail_on:
                raise RuntimeError(f"service unavailable for {image_path.name}")
            pairs = self.answers.get(image_path.name, [])
            matches = [
                GatewayMatch(person_name=name, confidence=conf, face_id=f"face-{i}")
                for i, (name, conf) in enumerate(pairs)
            ]
            return SearchResult(matches=matches, diagnostics=SearchDiagnostics(face_detected=bool(matches)))
        finally:
            with self._lock:
                self._in_flight -= 1

@pytest.fixture
def fake_gateway():
    return FakeGateway
