"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the core schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Known People
        # Created by training, or implicitly when the service reports an unknown name
        conn.execute("""
        CREATE TABLE IF NOT EXISTS persons (
            id                   INTEGER PRIMARY KEY AUTOINCREMENT,
            name                 TEXT UNIQUE NOT NULL,
            display_name         TEXT,
            notes                TEXT,
            trained_at           TEXT NOT NULL,
            face_count           INTEGER NOT NULL DEFAULT 0,
            photo_count          INTEGER NOT NULL DEFAULT 0,
            user_id              TEXT,
            reference_photo_path TEXT
        );
        """)

        # 3. Scan Runs (history/audit)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS scans (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            started_at       TEXT NOT NULL,
            completed_at     TEXT,
            duration_ms      INTEGER,
            source_paths     TEXT,
            photos_processed INTEGER NOT NULL DEFAULT 0,
            photos_cached    INTEGER NOT NULL DEFAULT 0,
            matches_found    INTEGER NOT NULL DEFAULT 0
        );
        """)

        # 4. Photo Records
        # Keyed by content hash; recognitions and corrections are JSON lists
        conn.execute("""
        CREATE TABLE IF NOT EXISTS photos (
            hash            TEXT PRIMARY KEY,
            path            TEXT NOT NULL,
            file_size       INTEGER,
            first_seen_at   TEXT NOT NULL,
            last_seen_at    TEXT NOT NULL,
            last_scan_id    INTEGER,
            photo_date      TEXT,
            faces_detected  INTEGER,
            recognitions    TEXT NOT NULL DEFAULT '[]',
            corrections     TEXT NOT NULL DEFAULT '[]'
        );
        """)

        # 5. Recognition History (append-only audit trail)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS recognition_history (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            photo_hash   TEXT NOT NULL,
            scan_id      INTEGER NOT NULL,
            recognitions TEXT NOT NULL,
            created_at   TEXT NOT NULL
        );
        """)

        # 6. Path Occurrences (every path a hash was seen at)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS photo_occurrences (
            path        TEXT PRIMARY KEY,
            hash        TEXT NOT NULL,
            size_bytes  INTEGER,
            seen_at     TEXT NOT NULL,
            scan_id     INTEGER
        );
        """)

        # 7. Directory Walk Cache
        conn.execute("""
        CREATE TABLE IF NOT EXISTS directory_cache (
            path          TEXT PRIMARY KEY,
            mtime_ns      INTEGER NOT NULL,
            file_count    INTEGER NOT NULL,
            last_scan_id  INTEGER,
            scanned_at    TEXT NOT NULL
        );
        """)

        # 8. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_photos_last_scan ON photos(last_scan_id);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_photos_photo_date ON photos(photo_date);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_history_photo ON recognition_history(photo_hash);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_history_scan ON recognition_history(scan_id);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_occurrences_hash ON photo_occurrences(hash);")

    logging.debug("Database schema initialized.")
