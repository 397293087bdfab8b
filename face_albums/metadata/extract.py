import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

import exifread

from .. import config
from ..scanning.sortkey import extract_date_from_filename


class MetadataExtractor:
    """
    Best-known capture date of a photo.

    Strategies, in order:
      - EXIF DateTimeOriginal (and friends) via 'exifread'.
      - A date-time encoded in the file name.
      - The file's modification time.
    """

    def photo_date(self, path: Path, modified_at: Optional[datetime] = None) -> Optional[str]:
        """Returns an ISO-8601 string, or None if the file is gone and the name carries no date."""
        dt = self.get_exif_date(path)
        if dt is None:
            dt = extract_date_from_filename(path.name)
        if dt is None:
            dt = modified_at or self._file_mtime(path)
        return dt.isoformat() if dt else None

    def get_exif_date(self, path: Path) -> Optional[datetime]:
        try:
            with path.open('rb') as f:
                # details=False speeds up processing significantly
                tags = exifread.process_file(f, details=False)
        except Exception as e:
            logging.debug(f"ExifRead failed for {path}: {e}")
            return None
        return self._parse_exif_date(tags)

    def _parse_exif_date(self, tags) -> Optional[datetime]:
        """Helper to parse standard EXIF date strings from exifread."""
        for tag in config.DATE_TAGS:
            if tag in tags:
                try:
                    # EXIF format is usually "YYYY:MM:DD HH:MM:SS"
                    dt_str = str(tags[tag]).replace(':', '-', 2)
                    return datetime.strptime(dt_str, "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    continue
        return None

    def _file_mtime(self, path: Path) -> Optional[datetime]:
        try:
            return datetime.fromtimestamp(path.stat().st_mtime)
        except OSError:
            return None
