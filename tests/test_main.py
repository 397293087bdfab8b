import sys
import types
import pytest
from face_albums.main import main, parse_args
from face_albums.database.db import DBManager
from face_albums.database.store import PhotoStore
from face_albums.models import GatewayMatch, SearchResult, SearchDiagnostics

class StubGateway:
    search_method = "faces"

    def search(self, image_path):
        if image_path.name == "alice.jpg":
            return SearchResult([GatewayMatch("alice", 97.0, "f1")], SearchDiagnostics(face_detected=True))
        return SearchResult([], SearchDiagnostics(face_detected=False))

@pytest.fixture
def library(tmp_path, monkeypatch):
    module = types.ModuleType("stub_faces")
    module.make = StubGateway
    monkeypatch.setitem(sys.modules, "stub_faces", module)

    lib = tmp_path / "lib"
    lib.mkdir()
    (lib / "alice.jpg").write_bytes(b"alice")
    (lib / "empty.jpg").write_bytes(b"empty")

    db = tmp_path / "data" / "faces.db"
    db.parent.mkdir()
    with DBManager(db) as conn:
        PhotoStore(conn).create_person("alice")
    return lib, db

def test_parse_args_rejects_bad_limit():
    with pytest.raises(SystemExit):
        parse_args(["scan", "photos", "--gateway", "m:f", "--limit", "0"])

def test_scan_status_report(library, tmp_path, capsys):
    lib, db = library

    main(["--db", str(db), "scan", str(lib), "--gateway", "stub_faces:make", "--concurrency", "1", "--verbose-items"])

    main(["--db", str(db), "status"])
    out = capsys.readouterr().out
    assert out.split("Photos:")[1].split()[0] == "2"

    report = tmp_path / "out.csv"
    main(["--db", str(db), "report", "--output", str(report)])
    assert "alice.jpg" in report.read_text(encoding="utf-8")

def test_review_and_clear_commands(library):
    lib, db = library
    main(["--db", str(db), "scan", str(lib), "--gateway", "stub_faces:make"])
    main(["--db", str(db), "reject", "--person", "alice", "--photo", str(lib / "alice.jpg")])

    with DBManager(db) as conn:
        assert PhotoStore(conn).get_stats().rejected_count == 1

    with pytest.raises(SystemExit) as exc:
        main(["--db", str(db), "add-match", "--person", "alice", "--photo", str(lib / "alice.jpg")])
    assert exc.value.code == 1

    with pytest.raises(SystemExit):
        main(["--db", str(db), "clear"])
    main(["--db", str(db), "dircache", "clear", str(lib)])
    main(["--db", str(db), "clear", "--yes"])

    with DBManager(db) as conn:
        stats = PhotoStore(conn).get_stats()
        assert stats.total_photos == 0
        assert stats.total_persons == 1
