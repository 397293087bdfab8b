import json
import sqlite3
import logging
import threading
from datetime import datetime, UTC
from typing import Optional, Tuple, List, Dict, Iterable

from ..models import (
    PhotoRecord, Recognition, Correction, Person, ScanRun, ScanStats, DbStats,
    APPROVED, FALSE_POSITIVE, FALSE_NEGATIVE,
)
from .corrections import effective_recognitions

PHOTO_COLUMNS = """
    hash, path, file_size, first_seen_at, last_seen_at, last_scan_id,
    photo_date, faces_detected, recognitions, corrections
"""

PERSON_COLUMNS = """
    id, name, display_name, notes, trained_at, face_count, photo_count,
    user_id, reference_photo_path
"""

SCAN_COLUMNS = """
    id, started_at, completed_at, duration_ms, source_paths,
    photos_processed, photos_cached, matches_found
"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _dump_recognitions(recognitions: Iterable[Recognition]) -> str:
    return json.dumps([r.to_dict() for r in recognitions])


def _dump_corrections(corrections: Iterable[Correction]) -> str:
    return json.dumps([c.to_dict() for c in corrections])


class PhotoStore:
    """
    System of record for photos, persons and scan runs.

    Every statement runs under the lock shared with the owning DBManager, so one
    store may be used from scanner worker threads and the main thread at once.
    """
    def __init__(self, conn: sqlite3.Connection, lock: Optional[threading.RLock] = None):
        self.conn = conn
        self.lock = lock or threading.RLock()

    # --- Photos ---

    def get(self, photo_hash: str) -> Optional[PhotoRecord]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT {PHOTO_COLUMNS} FROM photos WHERE hash = ?", (photo_hash,))
            row = cur.fetchone()
        return self._row_to_photo(row) if row else None

    def put(self,
            photo_hash: str,
            path: str,
            file_size: Optional[int],
            scan_id: int,
            recognitions: List[Recognition],
            photo_date: Optional[str] = None,
            faces_detected: Optional[int] = None):
        """
        Upserts a photo after a real recognition call.

        On conflict the path, size, last_seen_at, last_scan_id, recognitions and
        faces_detected are overwritten. photo_date keeps its first non-null value
        and corrections are never touched.
        """
        now_iso = _now()
        with self.lock, self.conn:
            self.conn.execute("""
                INSERT INTO photos (
                    hash, path, file_size, first_seen_at, last_seen_at, last_scan_id,
                    photo_date, faces_detected, recognitions, corrections
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, '[]')
                ON CONFLICT(hash) DO UPDATE SET
                    path = excluded.path,
                    file_size = excluded.file_size,
                    last_seen_at = excluded.last_seen_at,
                    last_scan_id = excluded.last_scan_id,
                    photo_date = COALESCE(photos.photo_date, excluded.photo_date),
                    faces_detected = excluded.faces_detected,
                    recognitions = excluded.recognitions
            """, (
                photo_hash, str(path), file_size, now_iso, now_iso, scan_id,
                photo_date, faces_detected, _dump_recognitions(recognitions),
            ))

    def touch(self, photo_hash: str, path: str):
        """Records that a known hash was seen again, possibly at a new path."""
        with self.lock, self.conn:
            self.conn.execute(
                "UPDATE photos SET path = ?, last_seen_at = ? WHERE hash = ?",
                (str(path), _now(), photo_hash),
            )

    def replace_corrections(self, photo_hash: str, corrections: List[Correction]) -> bool:
        """
        Overwrites the correction list of a photo.
        Only the correction overlay calls this; it owns the merge rule.
        """
        with self.lock, self.conn:
            cur = self.conn.execute(
                "UPDATE photos SET corrections = ? WHERE hash = ?",
                (_dump_corrections(corrections), photo_hash),
            )
            return cur.rowcount > 0

    def record_occurrence(self, path: str, photo_hash: str, size_bytes: Optional[int], scan_id: Optional[int]):
        """Tracks a specific on-disk location of a hash."""
        with self.lock, self.conn:
            self.conn.execute("""
                INSERT OR REPLACE INTO photo_occurrences (path, hash, size_bytes, seen_at, scan_id)
                VALUES (?, ?, ?, ?, ?)
            """, (str(path), photo_hash, size_bytes, _now(), scan_id))

    def get_occurrences(self, photo_hash: str) -> List[str]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("SELECT path FROM photo_occurrences WHERE hash = ? ORDER BY path", (photo_hash,))
            return [row[0] for row in cur.fetchall()]

    def save_recognition_history(self, photo_hash: str, scan_id: int, recognitions: List[Recognition]):
        with self.lock, self.conn:
            self.conn.execute("""
                INSERT INTO recognition_history (photo_hash, scan_id, recognitions, created_at)
                VALUES (?, ?, ?, ?)
            """, (photo_hash, scan_id, _dump_recognitions(recognitions), _now()))

    def get_recognition_history(self, photo_hash: str) -> List[Tuple[int, List[Recognition]]]:
        """Returns (scan_id, recognitions) for every recognition call on a hash, oldest first."""
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                "SELECT scan_id, recognitions FROM recognition_history WHERE photo_hash = ? ORDER BY id",
                (photo_hash,),
            )
            rows = cur.fetchall()
        return [
            (scan_id, [Recognition.from_dict(r) for r in json.loads(raw)])
            for scan_id, raw in rows
        ]

    def get_photos_by_scan(self, scan_id: int) -> List[PhotoRecord]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                f"SELECT {PHOTO_COLUMNS} FROM photos WHERE last_scan_id = ? ORDER BY path",
                (scan_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_photo(row) for row in rows]

    def iter_photos(self) -> List[PhotoRecord]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT {PHOTO_COLUMNS} FROM photos ORDER BY path")
            rows = cur.fetchall()
        return [self._row_to_photo(row) for row in rows]

    def clear_all_photos(self) -> Dict[str, int]:
        """Deletes photos, scans and caches. Persons (training data) are kept."""
        counts = {}
        with self.lock, self.conn:
            for table in ("photos", "recognition_history", "photo_occurrences", "scans", "directory_cache"):
                cur = self.conn.execute(f"DELETE FROM {table}")
                counts[table] = cur.rowcount
        logging.info(f"Cleared {counts['photos']} photos and {counts['scans']} scans.")
        return counts

    # --- Persons ---

    def create_person(self,
                      name: str,
                      user_id: Optional[str] = None,
                      reference_photo_path: Optional[str] = None,
                      face_count: int = 0) -> Person:
        """Inserts or refreshes a trained person."""
        with self.lock, self.conn:
            self.conn.execute("""
                INSERT INTO persons (name, trained_at, user_id, reference_photo_path, face_count)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    trained_at = excluded.trained_at,
                    user_id = COALESCE(excluded.user_id, persons.user_id),
                    reference_photo_path = COALESCE(excluded.reference_photo_path, persons.reference_photo_path),
                    face_count = MAX(excluded.face_count, persons.face_count)
            """, (name, _now(), user_id, reference_photo_path, face_count))
            person = self.get_person(name)
        if person is None:
            raise RuntimeError(f"Person {name!r} missing after insert.")
        return person

    def get_or_create_person(self, name: str) -> Tuple[Person, bool]:
        """Returns (person, created). Creation only happens for names never seen before."""
        with self.lock:
            person = self.get_person(name)
            if person:
                return person, False
            return self.create_person(name), True

    def get_person(self, name: str) -> Optional[Person]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT {PERSON_COLUMNS} FROM persons WHERE name = ?", (name,))
            row = cur.fetchone()
        return Person(*row) if row else None

    def get_person_by_id(self, person_id: int) -> Optional[Person]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT {PERSON_COLUMNS} FROM persons WHERE id = ?", (person_id,))
            row = cur.fetchone()
        return Person(*row) if row else None

    def get_all_persons(self) -> List[Person]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT {PERSON_COLUMNS} FROM persons ORDER BY name")
            rows = cur.fetchall()
        return [Person(*row) for row in rows]

    def get_photo_counts_by_person(self) -> Dict[int, int]:
        """Counts photos per person from effective (threshold-agnostic) matches."""
        counts: Dict[int, int] = {}
        for photo in self.iter_photos():
            person_ids = {r.person_id for r in effective_recognitions(photo.recognitions, photo.corrections)}
            for person_id in person_ids:
                counts[person_id] = counts.get(person_id, 0) + 1
        return counts

    def update_all_person_photo_counts(self):
        counts = self.get_photo_counts_by_person()
        with self.lock, self.conn:
            for person in self.get_all_persons():
                self.conn.execute(
                    "UPDATE persons SET photo_count = ? WHERE id = ?",
                    (counts.get(person.id, 0), person.id),
                )

    # --- Scan Runs ---

    def create_scan(self, source_paths: List[str]) -> int:
        with self.lock, self.conn:
            cur = self.conn.execute(
                "INSERT INTO scans (started_at, source_paths) VALUES (?, ?)",
                (_now(), json.dumps([str(p) for p in source_paths])),
            )
            if cur.lastrowid is None:
                raise RuntimeError("Database INSERT failed to return a row ID.")
            return cur.lastrowid

    def complete_scan(self, scan_id: int, stats: ScanStats, duration_ms: int) -> bool:
        """
        Finalizes a scan run. A completed run is immutable, so a second call is a no-op.
        Returns True if this call finalized the run.
        """
        with self.lock, self.conn:
            cur = self.conn.execute("""
                UPDATE scans
                SET completed_at = ?,
                    duration_ms = ?,
                    photos_processed = ?,
                    photos_cached = ?,
                    matches_found = ?
                WHERE id = ? AND completed_at IS NULL
            """, (
                _now(), duration_ms, stats.photos_processed,
                stats.photos_cached, stats.matches_found, scan_id,
            ))
            return cur.rowcount > 0

    def get_scan(self, scan_id: int) -> Optional[ScanRun]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT {SCAN_COLUMNS} FROM scans WHERE id = ?", (scan_id,))
            row = cur.fetchone()
        return self._row_to_scan(row) if row else None

    def get_last_scan(self) -> Optional[ScanRun]:
        scans = self.get_recent_scans(1)
        return scans[0] if scans else None

    def get_recent_scans(self, limit: int = 5) -> List[ScanRun]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT {SCAN_COLUMNS} FROM scans ORDER BY id DESC LIMIT ?", (limit,))
            rows = cur.fetchall()
        return [self._row_to_scan(row) for row in rows]

    # --- Stats ---

    def get_stats(self) -> DbStats:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("SELECT COUNT(*) FROM photos")
            total_photos = cur.fetchone()[0]
            cur.execute("SELECT COUNT(*) FROM photos WHERE recognitions != '[]'")
            photos_with_matches = cur.fetchone()[0]
            cur.execute("SELECT COUNT(*) FROM persons")
            total_persons = cur.fetchone()[0]
            cur.execute("SELECT corrections FROM photos WHERE corrections != '[]'")
            rows = cur.fetchall()

        by_type = {APPROVED: 0, FALSE_POSITIVE: 0, FALSE_NEGATIVE: 0}
        for (raw,) in rows:
            for c in json.loads(raw):
                if c['type'] in by_type:
                    by_type[c['type']] += 1

        return DbStats(
            total_photos=total_photos,
            photos_with_matches=photos_with_matches,
            total_corrections=sum(by_type.values()),
            approved_count=by_type[APPROVED],
            rejected_count=by_type[FALSE_POSITIVE],
            false_negative_count=by_type[FALSE_NEGATIVE],
            total_persons=total_persons,
            last_scan=self.get_last_scan(),
        )

    # --- Row Mapping ---

    def _row_to_photo(self, row) -> PhotoRecord:
        (photo_hash, path, file_size, first_seen, last_seen, last_scan_id,
         photo_date, faces_detected, recognitions_json, corrections_json) = row
        return PhotoRecord(
            hash=photo_hash,
            path=path,
            file_size=file_size,
            first_seen_at=first_seen,
            last_seen_at=last_seen,
            last_scan_id=last_scan_id,
            photo_date=photo_date,
            faces_detected=faces_detected,
            recognitions=[Recognition.from_dict(r) for r in json.loads(recognitions_json or '[]')],
            corrections=[Correction.from_dict(c) for c in json.loads(corrections_json or '[]')],
        )

    def _row_to_scan(self, row) -> ScanRun:
        (scan_id, started_at, completed_at, duration_ms, source_paths,
         processed, cached, matches) = row
        return ScanRun(
            id=scan_id,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
            source_paths=json.loads(source_paths) if source_paths else [],
            photos_processed=processed,
            photos_cached=cached,
            matches_found=matches,
        )
