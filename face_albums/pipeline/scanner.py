import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from contextlib import contextmanager
from typing import Iterable, Optional, Callable, Dict, List, Set, Iterator
from concurrent.futures import ThreadPoolExecutor, Future, wait, FIRST_COMPLETED

from .. import config
from ..exceptions import FileHashError, ScanPreconditionError
from ..models import (
    PhotoInfo, Recognition, Correction, Person, SearchDiagnostics,
    PersonMatch, PhotoMatch, ScanProgress, VerboseInfo, ScanStats, ScanResult,
)
from ..database.store import PhotoStore
from ..database.dircache import DirectoryCache
from ..database.corrections import thresholded_recognitions, correction_status
from ..metadata.extract import MetadataExtractor
from ..recognition.gateway import RecognitionGateway
from ..scanning.hasher import FileHasher
from ..scanning.sortkey import sort_key
from .admission import NewScanBudget

ProgressCallback = Callable[[ScanProgress], None]
VerboseCallback = Callable[[VerboseInfo], None]


@dataclass
class ItemOutcome:
    """What a worker learned about one photo. Aggregated on the calling thread."""
    info: PhotoInfo
    photo_hash: Optional[str] = None
    from_cache: bool = False
    new_scan: bool = False
    failed: bool = False
    recognitions: List[Recognition] = field(default_factory=list)
    corrections: List[Correction] = field(default_factory=list)
    faces_detected: Optional[int] = None
    diagnostics: Optional[SearchDiagnostics] = None


class PhotoScanner:
    """
    Turns a stream of candidate photos into per-person match lists.

    Known content (by hash) is answered from the store; unknown content goes
    to the recognition gateway, bounded by an optional new-scan limit. Up to
    `concurrency` photos are worked on at once and their outcomes are folded
    into the result in completion order. concurrency=1 is strictly sequential.
    """
    def __init__(self,
                 gateway: RecognitionGateway,
                 store: PhotoStore,
                 min_confidence: float = config.MIN_CONFIDENCE,
                 metadata: Optional[MetadataExtractor] = None,
                 hasher: Optional[FileHasher] = None):
        self.gateway = gateway
        self.store = store
        self.min_confidence = min_confidence
        self.metadata = metadata or MetadataExtractor()
        self.hasher = hasher or FileHasher()

        self._created_lock = threading.Lock()
        self._created_persons: List[Person] = []

        # Digests some worker is currently resolving, so identical bytes
        # queued side by side hit the cache instead of the service twice.
        self._inflight_lock = threading.Lock()
        self._inflight: Dict[str, threading.Event] = {}

    def validate_search_mode(self):
        """Fails before any work if the gateway's mode lacks the trained data it needs."""
        method = getattr(self.gateway, 'search_method', config.DEFAULT_SEARCH_METHOD)
        if method not in config.SEARCH_METHODS:
            raise ScanPreconditionError(f"Unknown search method: {method}")

        persons = self.store.get_all_persons()
        if not persons:
            raise ScanPreconditionError("No trained persons. Train at least one person before scanning.")

        if method == 'users':
            missing = [p.name for p in persons if not p.user_id]
            if missing:
                raise ScanPreconditionError(
                    f"Search method 'users' needs aggregated users; missing for: {', '.join(missing)}")
        elif method == 'compare':
            missing = [p.name for p in persons if not p.reference_photo_path]
            if missing:
                raise ScanPreconditionError(
                    f"Search method 'compare' needs reference photos; missing for: {', '.join(missing)}")

    def scan_photos(self,
                    photos: Iterable[PhotoInfo],
                    total: int,
                    scan_id: int,
                    force_rescan: bool = False,
                    new_scans_limit: Optional[int] = None,
                    on_progress: Optional[ProgressCallback] = None,
                    on_verbose: Optional[VerboseCallback] = None,
                    concurrency: int = 1,
                    dir_cache: Optional[DirectoryCache] = None) -> ScanResult:
        """
        With a dir_cache, the directory of every failed photo is forgotten so
        the next run lists it again and retries the photo.
        """
        concurrency = max(1, concurrency)
        max_pending = 1 if concurrency == 1 else concurrency * config.PENDING_PER_WORKER
        budget = NewScanBudget(new_scans_limit)

        stats = ScanStats()
        person_photos: Dict[str, List[PhotoMatch]] = {}
        self._created_persons = []
        self._inflight = {}

        def settle(futures: Set[Future]) -> Set[Future]:
            done, still_pending = wait(futures, return_when=FIRST_COMPLETED)
            for future in done:
                outcome = future.result()
                if outcome is None:
                    continue
                self._aggregate(outcome, stats, person_photos)
                if outcome.failed and dir_cache is not None:
                    dir_cache.forget(outcome.info.path.parent)
                if on_verbose:
                    on_verbose(VerboseInfo(
                        path=str(outcome.info.path),
                        from_cache=outcome.from_cache,
                        matches=self._person_matches(outcome),
                        diagnostics=outcome.diagnostics,
                    ))
                if on_progress:
                    on_progress(ScanProgress(
                        total=total,
                        processed=stats.photos_processed,
                        matched=stats.matches_found,
                        new_matched=stats.new_matched,
                        cached=stats.photos_cached,
                        current_photo=outcome.info.path.name,
                    ))
            return still_pending

        logging.info(f"Scanning {total} photos (concurrency={concurrency}, limit={new_scans_limit})")

        with ThreadPoolExecutor(max_workers=concurrency) as executor:
            pending: Set[Future] = set()
            for info in photos:
                # Wait while the queue is full, or while every remaining
                # permit is held by work that has not settled yet.
                while pending and (len(pending) >= max_pending or budget.saturated):
                    pending = settle(pending)
                if budget.exhausted:
                    logging.info(f"New-scan limit of {new_scans_limit} reached, stopping.")
                    break
                pending.add(executor.submit(self._process_item, info, scan_id, force_rescan, budget))

            while pending:
                pending = settle(pending)

        for matches in person_photos.values():
            matches.sort(key=lambda m: (sort_key(Path(m.photo_path).name), m.photo_path))

        created = list(self._created_persons)
        for person in created:
            logging.info(f"Created person '{person.name}' (id={person.id}) from a recognition match.")

        logging.info(
            f"Scan finished: {stats.photos_processed} processed, {stats.photos_cached} cached, "
            f"{stats.new_scans} new, {stats.matches_found} matched, {stats.failed} failed."
        )
        return ScanResult(person_photos=person_photos, stats=stats, created_persons=created)

    # --- Worker Side ---

    def _process_item(self,
                      info: PhotoInfo,
                      scan_id: int,
                      force_rescan: bool,
                      budget: NewScanBudget) -> Optional[ItemOutcome]:
        """
        Runs on a pool thread. Returns None when the photo was skipped because
        the new-scan limit left no room for it.
        """
        try:
            try:
                hash_res = self.hasher.compute_hash(info.path)
            except FileHashError as e:
                logging.error(f"Failed to hash {info.path}: {e}")
                return ItemOutcome(info=info, failed=True)

            with self._claim(hash_res.digest):
                return self._resolve(info, hash_res.digest, hash_res.size, scan_id, force_rescan, budget)
        except Exception as e:
            logging.error(f"Failed to scan {info.path}: {e}")
            return ItemOutcome(info=info, failed=True)

    @contextmanager
    def _claim(self, digest: str) -> Iterator[None]:
        """Serializes work on one digest; later holders find the earlier result in the store."""
        while True:
            with self._inflight_lock:
                holder = self._inflight.get(digest)
                if holder is None:
                    done = threading.Event()
                    self._inflight[digest] = done
                    break
            holder.wait()
        try:
            yield
        finally:
            with self._inflight_lock:
                del self._inflight[digest]
            done.set()

    def _resolve(self,
                 info: PhotoInfo,
                 digest: str,
                 size: int,
                 scan_id: int,
                 force_rescan: bool,
                 budget: NewScanBudget) -> Optional[ItemOutcome]:
        existing = self.store.get(digest)

        # A forced rescan still calls the service only once per digest per run
        if existing is not None and (not force_rescan or existing.last_scan_id == scan_id):
            self.store.touch(digest, str(info.path))
            self.store.record_occurrence(str(info.path), digest, size, scan_id)
            logging.debug(f"Cache hit: {info.path}")
            return ItemOutcome(
                info=info,
                photo_hash=digest,
                from_cache=True,
                recognitions=existing.recognitions,
                corrections=existing.corrections,
                faces_detected=existing.faces_detected,
            )

        if not budget.try_acquire():
            logging.debug(f"New-scan limit reached, skipping {info.path}")
            return None

        try:
            recognitions, diagnostics = self._recognize(info.path)
            photo_date = info.photo_date or self.metadata.photo_date(info.path, info.modified_at)
            self.store.put(
                digest,
                str(info.path),
                size,
                scan_id,
                recognitions,
                photo_date=photo_date,
                faces_detected=diagnostics.faces_detected,
            )
            self.store.save_recognition_history(digest, scan_id, recognitions)
            self.store.record_occurrence(str(info.path), digest, size, scan_id)
        except Exception:
            budget.release()
            raise
        budget.commit()

        return ItemOutcome(
            info=info,
            photo_hash=digest,
            new_scan=True,
            recognitions=recognitions,
            # Corrections survive a forced rescan
            corrections=existing.corrections if existing else [],
            faces_detected=diagnostics.faces_detected,
            diagnostics=diagnostics,
        )

    def _recognize(self, path: Path):
        result = self.gateway.search(path)
        method = getattr(self.gateway, 'search_method', None)

        recognitions = []
        for match in result.matches:
            person, created = self.store.get_or_create_person(match.person_name)
            if created:
                with self._created_lock:
                    self._created_persons.append(person)
            recognitions.append(Recognition(
                person_id=person.id,
                person_name=person.name,
                confidence=match.confidence,
                face_id=match.face_id,
                bounding_box=match.bounding_box,
                search_method=method,
            ))
        return recognitions, result.diagnostics

    # --- Aggregation (calling thread) ---

    def _aggregate(self, outcome: ItemOutcome, stats: ScanStats, person_photos: Dict[str, List[PhotoMatch]]):
        stats.photos_processed += 1
        if outcome.failed:
            stats.failed += 1
            return
        if outcome.from_cache:
            stats.photos_cached += 1
        if outcome.new_scan:
            stats.new_scans += 1

        matches = self._person_matches(outcome)
        if not matches:
            return

        stats.matches_found += 1
        if not outcome.from_cache:
            stats.new_matched += 1

        photo_match = PhotoMatch(
            photo_path=str(outcome.info.path),
            photo_hash=outcome.photo_hash,
            matches=matches,
            from_cache=outcome.from_cache,
            faces_detected=outcome.faces_detected,
        )
        for m in matches:
            person_photos.setdefault(m.person_name, []).append(photo_match)

    def _person_matches(self, outcome: ItemOutcome) -> List[PersonMatch]:
        """Effective matches above threshold, one entry per person (best confidence)."""
        if outcome.failed:
            return []

        best: Dict[int, PersonMatch] = {}
        for r in thresholded_recognitions(outcome.recognitions, outcome.corrections, self.min_confidence):
            current = best.get(r.person_id)
            if current is None or r.confidence > current.confidence:
                best[r.person_id] = PersonMatch(
                    person_id=r.person_id,
                    person_name=r.person_name,
                    confidence=r.confidence,
                    correction_status=correction_status(r.person_id, outcome.corrections),
                )
        return list(best.values())
