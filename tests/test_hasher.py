import pytest
from face_albums.scanning.hasher import FileHasher
from face_albums.exceptions import FileHashError
from face_albums import config

def test_hash_is_content_identity(tmp_path):
    a = tmp_path / "a.jpg"
    b = tmp_path / "sub_b.jpg"
    a.write_bytes(b"same bytes")
    b.write_bytes(b"same bytes")

    hasher = FileHasher()
    ra = hasher.compute_hash(a)
    rb = hasher.compute_hash(b)

    assert ra.digest == rb.digest
    assert ra.size == 10

def test_hash_differs_for_different_content(tmp_path):
    a = tmp_path / "a.jpg"
    b = tmp_path / "b.jpg"
    a.write_bytes(b"one")
    b.write_bytes(b"two")

    hasher = FileHasher()
    assert hasher.compute_hash(a).digest != hasher.compute_hash(b).digest

def test_hash_streams_large_files(tmp_path):
    """Files spanning several chunks hash to the same digest as hashlib over the whole file."""
    import hashlib
    data = b"x" * (config.HASH_CHUNK_SIZE * 3 + 17)
    p = tmp_path / "big.jpg"
    p.write_bytes(data)

    res = FileHasher().compute_hash(p)
    assert res.digest == hashlib.sha256(data).hexdigest()
    assert res.size == len(data)

def test_missing_file_raises(tmp_path):
    with pytest.raises(FileHashError):
        FileHasher().compute_hash(tmp_path / "gone.jpg")
