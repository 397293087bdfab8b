import time
import logging
from pathlib import Path
from typing import Optional, List, Union, Callable

from .database.db import DBManager
from .database.store import PhotoStore
from .database.dircache import DirectoryCache
from .database.corrections import CorrectionOverlay
from .metadata.extract import MetadataExtractor
from .pipeline.scanner import PhotoScanner, ProgressCallback, VerboseCallback
from .recognition.gateway import RecognitionGateway, RateLimitedGateway
from .scanning.filesystem import LocalPhotoSource
from .scanning.hasher import FileHasher
from .models import ScanResult, ScanStats
from . import config


class FaceAlbumsApp:
    def __init__(self, db_path: Union[Path, str]):
        self.db_manager = DBManager(db_path)

    def scan(self,
             paths: List[Union[Path, str]],
             gateway: RecognitionGateway,
             force_rescan: bool = False,
             new_scans_limit: Optional[int] = None,
             name_filter: Optional[str] = None,
             min_confidence: float = config.MIN_CONFIDENCE,
             concurrency: int = config.SCAN_CONCURRENCY,
             use_dir_cache: bool = True,
             extensions: Optional[List[str]] = None,
             rate_limit: bool = True,
             on_start: Optional[Callable[[int, Optional[int]], None]] = None,
             on_progress: Optional[ProgressCallback] = None,
             on_verbose: Optional[VerboseCallback] = None) -> ScanResult:
        """
        Executes one scan run.
        1. Validate the search mode against trained persons (nothing is written on failure)
        2. Open a ScanRun and estimate the photo count
        3. Stream photos through the scanner
        4. Finalize the ScanRun, whatever happened in step 3
        5. Refresh per-person photo counts

        Args:
            on_start: Called with (total, new_scans_limit) once the count estimate is known.
        """
        with self.db_manager as conn:
            lock = self.db_manager.write_lock
            store = PhotoStore(conn, lock)

            if rate_limit and not isinstance(gateway, RateLimitedGateway):
                gateway = RateLimitedGateway(gateway)

            scanner = PhotoScanner(gateway, store, min_confidence=min_confidence, metadata=MetadataExtractor(), hasher=FileHasher())
            scanner.validate_search_mode()

            # Forced rescans must see every file, so the directory cache is bypassed.
            dir_cache = DirectoryCache(conn, lock) if use_dir_cache and not force_rescan else None

            scan_id = store.create_scan([str(p) for p in paths])
            logging.info(f"Started scan #{scan_id} over {len(paths)} path(s).")
            started = time.monotonic()
            stats = ScanStats()

            try:
                # A limited run may leave photos unscanned, so it never marks a directory as done.
                source = LocalPhotoSource(paths, extensions, dir_cache=dir_cache, name_filter=name_filter,
                                          scan_id=scan_id, record_dirs=new_scans_limit is None)
                total = source.count()
                if on_start:
                    on_start(total, new_scans_limit)

                result = scanner.scan_photos(
                    source.scan(),
                    total=total,
                    scan_id=scan_id,
                    force_rescan=force_rescan,
                    new_scans_limit=new_scans_limit,
                    on_progress=on_progress,
                    on_verbose=on_verbose,
                    concurrency=concurrency,
                    dir_cache=dir_cache,
                )
                stats = result.stats
            finally:
                duration_ms = int((time.monotonic() - started) * 1000)
                store.complete_scan(scan_id, stats, duration_ms)
                logging.info(f"Scan #{scan_id} finalized after {duration_ms} ms.")

            store.update_all_person_photo_counts()
            return result

    # --- Review ---

    def approve(self, photo_path: Union[Path, str], person_name: str):
        self._review(photo_path, person_name, 'approve_match')

    def reject(self, photo_path: Union[Path, str], person_name: str):
        self._review(photo_path, person_name, 'reject_match')

    def add_match(self, photo_path: Union[Path, str], person_name: str):
        self._review(photo_path, person_name, 'add_match')

    def _review(self, photo_path: Union[Path, str], person_name: str, action: str):
        """Photos are identified by content, so a moved file still finds its record."""
        photo_hash = FileHasher().compute_hash(Path(photo_path)).digest
        with self.db_manager as conn:
            store = PhotoStore(conn, self.db_manager.write_lock)
            overlay = CorrectionOverlay(store)
            getattr(overlay, action)(photo_hash, person_name)
            store.update_all_person_photo_counts()

    # --- Maintenance ---

    def clear_directory_cache(self, prefix: Union[Path, str]) -> int:
        with self.db_manager as conn:
            return DirectoryCache(conn, self.db_manager.write_lock).clear(Path(prefix).resolve())

    def clear_all_photos(self):
        with self.db_manager as conn:
            store = PhotoStore(conn, self.db_manager.write_lock)
            counts = store.clear_all_photos()
            store.update_all_person_photo_counts()
            return counts
