from face_albums.models import Recognition, ScanStats, APPROVED, FALSE_POSITIVE, FALSE_NEGATIVE

def _rec(person, conf=95.0):
    return Recognition(person_id=person.id, person_name=person.name, confidence=conf, face_id="f1")

def test_put_and_get_roundtrip(store):
    alice = store.create_person("alice")
    scan_id = store.create_scan(["/photos"])

    store.put("h1", "/photos/a.jpg", 10, scan_id, [_rec(alice)], photo_date="2020-01-01T00:00:00", faces_detected=1)
    rec = store.get("h1")

    assert rec.path == "/photos/a.jpg"
    assert rec.file_size == 10
    assert rec.last_scan_id == scan_id
    assert rec.faces_detected == 1
    assert rec.recognitions[0].person_name == "alice"
    assert rec.corrections == []
    assert store.get("missing") is None

def test_put_keeps_first_photo_date_and_corrections(store, overlay):
    alice = store.create_person("alice")
    s1 = store.create_scan(["/p"])
    s2 = store.create_scan(["/p"])

    store.put("h1", "/p/a.jpg", 10, s1, [_rec(alice)], photo_date="2020-01-01T00:00:00")
    overlay.apply_correction("h1", alice.id, alice.name, APPROVED)
    first_seen = store.get("h1").first_seen_at

    store.put("h1", "/p/moved.jpg", 10, s2, [], photo_date="2024-06-06T00:00:00", faces_detected=0)
    rec = store.get("h1")

    assert rec.photo_date == "2020-01-01T00:00:00"
    assert rec.first_seen_at == first_seen
    assert rec.path == "/p/moved.jpg"
    assert rec.last_scan_id == s2
    assert rec.recognitions == []
    assert [c.type for c in rec.corrections] == [APPROVED]

def test_put_fills_missing_photo_date(store):
    scan_id = store.create_scan(["/p"])
    store.put("h1", "/p/a.jpg", 1, scan_id, [], photo_date=None)
    store.put("h1", "/p/a.jpg", 1, scan_id, [], photo_date="2021-01-01T00:00:00")
    assert store.get("h1").photo_date == "2021-01-01T00:00:00"

def test_touch_updates_location_only(store):
    alice = store.create_person("alice")
    scan_id = store.create_scan(["/p"])
    store.put("h1", "/p/a.jpg", 1, scan_id, [_rec(alice)], photo_date="2020-01-01T00:00:00")
    before = store.get("h1")

    store.touch("h1", "/p/renamed.jpg")
    after = store.get("h1")

    assert after.path == "/p/renamed.jpg"
    assert after.first_seen_at == before.first_seen_at
    assert after.photo_date == before.photo_date
    assert after.recognitions == before.recognitions

def test_occurrences_and_history(store):
    alice = store.create_person("alice")
    scan_id = store.create_scan(["/p"])
    store.record_occurrence("/p/a.jpg", "h1", 1, scan_id)
    store.record_occurrence("/p/copy.jpg", "h1", 1, scan_id)
    store.save_recognition_history("h1", scan_id, [_rec(alice)])
    store.save_recognition_history("h1", scan_id, [])

    assert store.get_occurrences("h1") == ["/p/a.jpg", "/p/copy.jpg"]
    history = store.get_recognition_history("h1")
    assert [len(r) for _, r in history] == [1, 0]
    assert history[0][1][0].person_name == "alice"

def test_get_or_create_person(store):
    p1, created1 = store.get_or_create_person("bob")
    p2, created2 = store.get_or_create_person("bob")
    assert created1 is True
    assert created2 is False
    assert p1.id == p2.id
    assert store.get_person_by_id(p1.id).name == "bob"
    assert [p.name for p in store.get_all_persons()] == ["bob"]

def test_complete_scan_is_final(store):
    scan_id = store.create_scan(["/a", "/b"])
    assert store.complete_scan(scan_id, ScanStats(photos_processed=5, photos_cached=2, matches_found=1), 1200)
    assert not store.complete_scan(scan_id, ScanStats(photos_processed=99), 5)

    scan = store.get_scan(scan_id)
    assert scan.source_paths == ["/a", "/b"]
    assert scan.photos_processed == 5
    assert scan.duration_ms == 1200
    assert scan.completed_at is not None
    assert store.get_last_scan().id == scan_id

def test_recent_scans_newest_first(store):
    ids = [store.create_scan(["/p"]) for _ in range(3)]
    assert [s.id for s in store.get_recent_scans(2)] == [ids[2], ids[1]]

def test_photos_by_scan(store):
    s1 = store.create_scan(["/p"])
    s2 = store.create_scan(["/p"])
    store.put("h1", "/p/a.jpg", 1, s1, [])
    store.put("h2", "/p/b.jpg", 1, s2, [])
    assert [p.hash for p in store.get_photos_by_scan(s2)] == ["h2"]

def test_stats_and_photo_counts(store, overlay):
    alice = store.create_person("alice")
    bob = store.create_person("bob")
    scan_id = store.create_scan(["/p"])
    store.put("h1", "/p/a.jpg", 1, scan_id, [_rec(alice), _rec(alice, 90.0)])
    store.put("h2", "/p/b.jpg", 1, scan_id, [_rec(bob)])
    store.put("h3", "/p/c.jpg", 1, scan_id, [])

    overlay.apply_correction("h2", bob.id, bob.name, FALSE_POSITIVE)
    overlay.apply_correction("h3", alice.id, alice.name, FALSE_NEGATIVE)
    store.update_all_person_photo_counts()

    assert store.get_person("alice").photo_count == 2
    assert store.get_person("bob").photo_count == 0

    stats = store.get_stats()
    assert stats.total_photos == 3
    assert stats.photos_with_matches == 2
    assert stats.total_corrections == 2
    assert stats.rejected_count == 1
    assert stats.false_negative_count == 1
    assert stats.total_persons == 2

def test_clear_all_photos_keeps_persons(store, dir_cache):
    store.create_person("alice")
    scan_id = store.create_scan(["/p"])
    store.put("h1", "/p/a.jpg", 1, scan_id, [])
    dir_cache.on_scanned("/p", 1, 1)

    store.clear_all_photos()

    assert store.get("h1") is None
    assert store.get_last_scan() is None
    assert dir_cache.get("/p") is None
    assert store.get_person("alice") is not None
