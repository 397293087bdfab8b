"""
Correction overlay: human review decisions layered over raw recognitions.

The overlay is the only writer of a photo's correction list. Scans and the
standalone review commands both go through `CorrectionOverlay.apply_correction`
so the replace-by-person merge rule is applied in one place.
"""
import logging
from dataclasses import replace
from datetime import datetime, UTC
from typing import List, Optional, TYPE_CHECKING

from .. import config
from ..exceptions import CorrectionError
from ..models import (
    Recognition, Correction, CORRECTION_TYPES,
    APPROVED, FALSE_POSITIVE, FALSE_NEGATIVE,
    STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED, STATUS_MANUAL,
)

if TYPE_CHECKING:
    from .store import PhotoStore


def merge_corrections(existing: List[Correction], new: Correction) -> List[Correction]:
    """Drops any prior correction for the same person and appends the new one."""
    merged = [c for c in existing if c.person_id != new.person_id]
    merged.append(new)
    return merged


def effective_recognitions(recognitions: List[Recognition],
                           corrections: List[Correction]) -> List[Recognition]:
    """
    Raw recognitions minus rejected persons, plus a 100% pseudo-recognition for
    every manually added person the recognition service missed.
    No confidence threshold is applied here.
    """
    rejected = {c.person_id for c in corrections if c.type == FALSE_POSITIVE}
    effective = [r for r in recognitions if r.person_id not in rejected]

    present = {r.person_id for r in effective}
    for c in corrections:
        if c.type == FALSE_NEGATIVE and c.person_id not in present:
            effective.append(Recognition(
                person_id=c.person_id,
                person_name=c.person_name,
                confidence=config.MANUAL_MATCH_CONFIDENCE,
            ))
            present.add(c.person_id)
    return effective


def correction_status(person_id: int, corrections: List[Correction]) -> str:
    """Review state of one (photo, person) pair."""
    for c in corrections:
        if c.person_id != person_id:
            continue
        if c.type == APPROVED:
            return STATUS_APPROVED
        if c.type == FALSE_POSITIVE:
            return STATUS_REJECTED
        if c.type == FALSE_NEGATIVE:
            return STATUS_MANUAL
    return STATUS_PENDING


def is_manual(person_id: int, corrections: List[Correction]) -> bool:
    return correction_status(person_id, corrections) == STATUS_MANUAL


def thresholded_recognitions(recognitions: List[Recognition],
                             corrections: List[Correction],
                             min_confidence: float) -> List[Recognition]:
    """
    Effective recognitions that clear the threshold. A person added by hand
    always passes, and every entry for them carries the manual confidence.
    """
    passed = []
    for r in effective_recognitions(recognitions, corrections):
        if is_manual(r.person_id, corrections):
            passed.append(replace(r, confidence=config.MANUAL_MATCH_CONFIDENCE))
        elif r.confidence >= min_confidence:
            passed.append(r)
    return passed


class CorrectionOverlay:
    def __init__(self, store: "PhotoStore"):
        self.store = store

    def apply_correction(self, photo_hash: str, person_id: int, person_name: str, correction_type: str) -> bool:
        """
        Records a decision for one person on one photo.
        Returns False when the photo has never been scanned.
        """
        if correction_type not in CORRECTION_TYPES:
            raise ValueError(f"Unknown correction type: {correction_type}")

        with self.store.lock:
            record = self.store.get(photo_hash)
            if record is None:
                return False

            new = Correction(
                person_id=person_id,
                person_name=person_name,
                type=correction_type,
                created_at=datetime.now(UTC).isoformat(),
            )
            self.store.replace_corrections(photo_hash, merge_corrections(record.corrections, new))

        logging.debug(f"Correction {correction_type} for {person_name} on {photo_hash[:12]}")
        return True

    def effective_matches(self, photo_hash: str) -> List[Recognition]:
        record = self.store.get(photo_hash)
        if record is None:
            return []
        return effective_recognitions(record.recognitions, record.corrections)

    def status(self, photo_hash: str, person_id: int) -> Optional[str]:
        record = self.store.get(photo_hash)
        if record is None:
            return None
        return correction_status(person_id, record.corrections)

    # --- Review Commands ---

    def approve_match(self, photo_hash: str, person_name: str):
        """Confirms a recognition the service actually made."""
        record, person = self._resolve(photo_hash, person_name)
        if not any(r.person_id == person.id for r in record.recognitions):
            raise CorrectionError(f"{person_name} was not recognized in {record.path}; use add-match instead.")
        self._apply(photo_hash, person.id, person.name, APPROVED)

    def reject_match(self, photo_hash: str, person_name: str):
        _, person = self._resolve(photo_hash, person_name)
        self._apply(photo_hash, person.id, person.name, FALSE_POSITIVE)

    def add_match(self, photo_hash: str, person_name: str):
        """Adds a person the recognition service missed."""
        record, person = self._resolve(photo_hash, person_name)
        if any(r.person_id == person.id for r in record.recognitions):
            raise CorrectionError(f"{person_name} is already recognized in {record.path}; use approve instead.")
        self._apply(photo_hash, person.id, person.name, FALSE_NEGATIVE)

    def _resolve(self, photo_hash: str, person_name: str):
        record = self.store.get(photo_hash)
        if record is None:
            raise CorrectionError(f"Photo {photo_hash[:12]} has not been scanned yet.")
        person = self.store.get_person(person_name)
        if person is None:
            raise CorrectionError(f"Unknown person: {person_name}")
        return record, person

    def _apply(self, photo_hash: str, person_id: int, person_name: str, correction_type: str):
        if not self.apply_correction(photo_hash, person_id, person_name, correction_type):
            raise CorrectionError(f"Photo {photo_hash[:12]} has not been scanned yet.")
        logging.info(f"Recorded {correction_type} for {person_name}.")
