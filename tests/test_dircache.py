def test_should_skip_requires_exact_mtime(dir_cache):
    assert dir_cache.should_skip("/photos/a", 1000) is None

    dir_cache.on_scanned("/photos/a", 1000, 12, scan_id=1)
    assert dir_cache.should_skip("/photos/a", 1000) == 12
    assert dir_cache.should_skip("/photos/a", 1001) is None

def test_on_scanned_overwrites(dir_cache):
    dir_cache.on_scanned("/photos/a", 1000, 12, scan_id=1)
    dir_cache.on_scanned("/photos/a", 2000, 13, scan_id=2)

    entry = dir_cache.get("/photos/a")
    assert entry.mtime_ns == 2000
    assert entry.file_count == 13
    assert entry.last_scan_id == 2

def test_clear_prefix_cascades_but_spares_siblings(dir_cache):
    for path in ("/photos/a", "/photos/a/b", "/photos/a/b/c", "/photos/ab", "/photos/a_b"):
        dir_cache.on_scanned(path, 1, 1)

    removed = dir_cache.clear("/photos/a/")

    assert removed == 3
    assert dir_cache.get("/photos/a") is None
    assert dir_cache.get("/photos/a/b/c") is None
    assert dir_cache.get("/photos/ab") is not None
    assert dir_cache.get("/photos/a_b") is not None

def test_clear_ignores_like_wildcards(dir_cache):
    dir_cache.on_scanned("/photos/x%y", 1, 1)
    dir_cache.on_scanned("/photos/xzy", 1, 1)

    dir_cache.clear("/photos/x%y")

    assert dir_cache.get("/photos/x%y") is None
    assert dir_cache.get("/photos/xzy") is not None

def test_clear_all(dir_cache):
    dir_cache.on_scanned("/a", 1, 1)
    dir_cache.on_scanned("/b", 1, 1)
    assert dir_cache.clear_all() == 2
    assert dir_cache.get("/a") is None

def test_forget_drops_one_directory(dir_cache):
    dir_cache.on_scanned("/photos/a", 1000, 12)
    dir_cache.on_scanned("/photos/a/b", 1000, 3)

    assert dir_cache.forget("/photos/a")
    assert dir_cache.should_skip("/photos/a", 1000) is None
    assert dir_cache.should_skip("/photos/a/b", 1000) == 3
    assert not dir_cache.forget("/photos/a")
