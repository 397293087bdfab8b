"""
Per-directory modification time memo.

Skipping a directory only elides its listing and the stat of its direct
children. It is a performance shortcut, not a correctness guarantee: an
operation that adds a file without bumping the directory mtime goes unseen
until the directory changes or the cache is cleared.
"""
import os
import sqlite3
import logging
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Optional, Union

from ..models import DirectoryCacheEntry


class DirectoryCache:
    def __init__(self, conn: sqlite3.Connection, lock: Optional[threading.RLock] = None):
        self.conn = conn
        self.lock = lock or threading.RLock()

    def get(self, dir_path: Union[Path, str]) -> Optional[DirectoryCacheEntry]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("""
                SELECT path, mtime_ns, file_count, last_scan_id, scanned_at
                FROM directory_cache WHERE path = ?
            """, (str(dir_path),))
            row = cur.fetchone()
        return DirectoryCacheEntry(*row) if row else None

    def should_skip(self, dir_path: Union[Path, str], mtime_ns: int) -> Optional[int]:
        """Returns the cached file count if the directory is unchanged, else None."""
        entry = self.get(dir_path)
        if entry is None or entry.mtime_ns != mtime_ns:
            return None
        return entry.file_count

    def on_scanned(self, dir_path: Union[Path, str], mtime_ns: int, file_count: int, scan_id: Optional[int] = None):
        with self.lock, self.conn:
            self.conn.execute("""
                INSERT INTO directory_cache (path, mtime_ns, file_count, last_scan_id, scanned_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    mtime_ns = excluded.mtime_ns,
                    file_count = excluded.file_count,
                    last_scan_id = excluded.last_scan_id,
                    scanned_at = excluded.scanned_at
            """, (str(dir_path), mtime_ns, file_count, scan_id, datetime.now(UTC).isoformat()))

    def forget(self, dir_path: Union[Path, str]) -> bool:
        """Drops one directory so its files are listed again next run."""
        with self.lock, self.conn:
            cur = self.conn.execute("DELETE FROM directory_cache WHERE path = ?", (str(dir_path),))
            return cur.rowcount > 0

    def clear(self, prefix: Union[Path, str]) -> int:
        """
        Drops the entry for `prefix` and every directory below it.
        Siblings that merely share a string prefix (/a/b vs /a/bc) are kept.
        """
        root = str(prefix).rstrip(os.sep) or os.sep
        below = root if root.endswith(os.sep) else root + os.sep
        with self.lock, self.conn:
            cur = self.conn.execute("""
                DELETE FROM directory_cache
                WHERE path = ? OR substr(path, 1, ?) = ?
            """, (root, len(below), below))
            removed = cur.rowcount
        logging.info(f"Cleared {removed} directory cache entries under {root}")
        return removed

    def clear_all(self) -> int:
        with self.lock, self.conn:
            cur = self.conn.execute("DELETE FROM directory_cache")
            return cur.rowcount
