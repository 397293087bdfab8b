import csv
import logging
from pathlib import Path
from typing import Optional, List, Tuple, Union

from .database.store import PhotoStore
from .database.corrections import thresholded_recognitions, correction_status
from .scanning.sortkey import sort_key
from .models import DbStats
from . import config

class ReportGenerator:
    def __init__(self, store: PhotoStore, min_confidence: float = config.MIN_CONFIDENCE):
        self.store = store
        self.min_confidence = min_confidence

    def write_scan_report(self, scan_id: Optional[int], output_csv: Union[Path, str]) -> int:
        """
        Writes one row per (photo, matched person) for photos last seen in a scan.
        Rows are grouped by person, then ordered by file name sort key.
        Uses the most recent scan when scan_id is None. Returns the row count.
        """
        if scan_id is None:
            last = self.store.get_last_scan()
            if last is None:
                raise FileNotFoundError("No scans recorded yet.")
            scan_id = last.id

        logging.info(f"Generating report for scan #{scan_id} -> {output_csv}")

        rows = self._collect_rows(scan_id)
        headers = ["Person", "Path", "Confidence", "Status", "Photo Date"]

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            for _, row in rows:
                writer.writerow(row)

        logging.info(f"Report complete. Wrote {len(rows)} rows.")
        return len(rows)

    def _collect_rows(self, scan_id: int) -> List[Tuple[tuple, list]]:
        rows = []
        for photo in self.store.get_photos_by_scan(scan_id):
            seen = set()
            matched = thresholded_recognitions(photo.recognitions, photo.corrections, self.min_confidence)
            # Best face per person
            for r in sorted(matched, key=lambda r: -r.confidence):
                if r.person_id in seen:
                    continue
                seen.add(r.person_id)
                order = (r.person_name.lower(), sort_key(Path(photo.path).name), photo.path)
                rows.append((order, [
                    r.person_name,
                    photo.path,
                    f"{r.confidence:.1f}",
                    correction_status(r.person_id, photo.corrections),
                    photo.photo_date or "",
                ]))
        rows.sort(key=lambda item: item[0])
        return rows

    def summary(self) -> DbStats:
        return self.store.get_stats()
