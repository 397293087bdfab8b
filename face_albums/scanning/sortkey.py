"""
Best-effort chronological ordering from file names.

Keys carry a one-character family tag so different naming schemes still
compare sensibly against each other:
  '0' camera counters and bare numeric IDs
  '1' anything carrying a date-time
  '2' everything else, alphabetically
"""
import re
from datetime import datetime
from typing import Optional

from .. import config

# photo_<id>@DD-MM-YYYY_HH-MM-SS (messenger exports)
EXPORT_PATTERN = re.compile(r'(\d+)@(\d{2})-(\d{2})-(\d{4})_(\d{2})-(\d{2})-(\d{2})')

# IMG_0001, DSC-1234, PXL12
CAMERA_ID_PATTERN = re.compile(r'^[A-Z]{2,5}[_-]?(\d+)', re.IGNORECASE)

# 0042.jpg; the whole stem must be the ID, eight or more digits read as a date
BARE_ID_PATTERN = re.compile(r'^(\d{1,7})(?=\.[^.]*$|$)')

# YYYYMMDD with optional HHMMSS, separators optional
DATE_PATTERN = re.compile(r'(\d{4})[-_]?(\d{2})[-_]?(\d{2})[-_]?(\d{2})?[-_]?(\d{2})?[-_]?(\d{2})?')


def sort_key(filename: str) -> str:
    m = EXPORT_PATTERN.search(filename)
    if m:
        id_, d, mo, y, h, mi, s = m.groups()
        return f"1{y}{mo}{d}{h}{mi}{s}_{id_.zfill(config.SORT_ID_WIDTH)}"

    m = CAMERA_ID_PATTERN.match(filename)
    if m:
        return "0" + m.group(1).zfill(config.SORT_ID_WIDTH)

    m = BARE_ID_PATTERN.match(filename)
    if m:
        return "0" + m.group(1).zfill(config.SORT_ID_WIDTH)

    m = DATE_PATTERN.search(filename)
    if m:
        y, mo, d, h, mi, s = m.groups()
        return f"1{y}{mo}{d}{h or '00'}{mi or '00'}{s or '00'}"

    return "2" + filename.lower()


def extract_date_from_filename(filename: str) -> Optional[datetime]:
    """Returns the date-time encoded in a file name, or None."""
    m = EXPORT_PATTERN.search(filename)
    if m:
        _, d, mo, y, h, mi, s = m.groups()
        parts = (y, mo, d, h, mi, s)
    else:
        m = DATE_PATTERN.search(filename)
        if not m:
            return None
        y, mo, d, h, mi, s = m.groups()
        parts = (y, mo, d, h or '0', mi or '0', s or '0')

    try:
        return datetime(*(int(p) for p in parts))
    except ValueError:
        # Digits that only look like a date (month 13, second 75, ...)
        return None
