"""
Configuration constants for face albums.
"""
from pathlib import Path

# --- File Type Definitions ---
PHOTO_EXTS = {'.jpg', '.jpeg', '.png', '.heic'}

# --- Storage ---
DB_FILENAME = ".face_albums.db"
LOG_FILENAME = "face_albums.log"
DEFAULT_DB_PATH = Path.cwd() / DB_FILENAME

# --- Metadata Parsing ---
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]

# --- Hashing ---
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading

# --- Recognition ---
# Percentage (0-100) a recognition must reach to count as a match
MIN_CONFIDENCE = 80.0

# Confidence given to a manually added (false negative) match
MANUAL_MATCH_CONFIDENCE = 100.0

# Rate contract of the recognition service
RATE_LIMIT_MIN_INTERVAL = 0.2  # seconds between calls
RATE_LIMIT_MAX_CONCURRENT = 5

SEARCH_METHODS = ('faces', 'users', 'compare')
DEFAULT_SEARCH_METHOD = 'faces'

# --- Scanning ---
# Photos in flight against the recognition service at once
SCAN_CONCURRENCY = 5

# Producer pauses once this many items per worker are pending
PENDING_PER_WORKER = 2

# --- Sort Keys ---
SORT_ID_WIDTH = 10
