from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any

# Correction types
APPROVED = 'approved'
FALSE_POSITIVE = 'false_positive'
FALSE_NEGATIVE = 'false_negative'
CORRECTION_TYPES = (APPROVED, FALSE_POSITIVE, FALSE_NEGATIVE)

# Review status of a (photo, person) pair
STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'
STATUS_REJECTED = 'rejected'
STATUS_MANUAL = 'manual'


@dataclass
class BoundingBox:
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BoundingBox":
        data = data or {}
        return cls(
            left=float(data.get('left', 0.0)),
            top=float(data.get('top', 0.0)),
            width=float(data.get('width', 0.0)),
            height=float(data.get('height', 0.0)),
        )


@dataclass
class Recognition:
    """
    A raw match for a person in a photo, as reported by the recognition service.
    Confidence is a percentage (0-100).
    """
    person_id: int
    person_name: str
    confidence: float
    face_id: str = ""
    bounding_box: BoundingBox = field(default_factory=BoundingBox)
    search_method: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recognition":
        return cls(
            person_id=int(data['person_id']),
            person_name=data['person_name'],
            confidence=float(data['confidence']),
            face_id=data.get('face_id') or "",
            bounding_box=BoundingBox.from_dict(data.get('bounding_box')),
            search_method=data.get('search_method'),
        )


@dataclass
class Correction:
    """A human decision for one person on one photo. Last decision per person wins."""
    person_id: int
    person_name: str
    type: str               # approved/false_positive/false_negative
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Correction":
        return cls(
            person_id=int(data['person_id']),
            person_name=data['person_name'],
            type=data['type'],
            created_at=data['created_at'],
        )


@dataclass
class PhotoRecord:
    """
    Everything known about one file's bytes, keyed by content hash.
    """
    hash: str
    path: str
    file_size: Optional[int]
    first_seen_at: str
    last_seen_at: str
    last_scan_id: Optional[int]
    photo_date: Optional[str] = None
    faces_detected: Optional[int] = None
    recognitions: List[Recognition] = field(default_factory=list)
    corrections: List[Correction] = field(default_factory=list)


@dataclass
class Person:
    id: int
    name: str
    display_name: Optional[str] = None
    notes: Optional[str] = None
    trained_at: Optional[str] = None
    face_count: int = 0
    photo_count: int = 0
    user_id: Optional[str] = None
    reference_photo_path: Optional[str] = None


@dataclass
class ScanRun:
    id: int
    started_at: str
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None
    source_paths: List[str] = field(default_factory=list)
    photos_processed: int = 0
    photos_cached: int = 0
    matches_found: int = 0


@dataclass
class DirectoryCacheEntry:
    path: str
    mtime_ns: int
    file_count: int
    last_scan_id: Optional[int]
    scanned_at: str


@dataclass
class PhotoInfo:
    """
    A candidate photo found by a source.
    """
    path: Path
    filename: str           # stem, without extension
    extension: str
    size: int
    modified_at: datetime
    photo_date: Optional[str] = None


# --- Scan Pipeline Records ---

@dataclass
class SearchDiagnostics:
    face_detected: bool = False
    detection_confidence: Optional[float] = None
    unsearched_face_count: Optional[int] = None

    @property
    def faces_detected(self) -> int:
        if not self.face_detected:
            return 0
        return 1 + (self.unsearched_face_count or 0)


@dataclass
class GatewayMatch:
    person_name: str
    confidence: float
    face_id: str = ""
    bounding_box: BoundingBox = field(default_factory=BoundingBox)


@dataclass
class SearchResult:
    matches: List[GatewayMatch]
    diagnostics: SearchDiagnostics = field(default_factory=SearchDiagnostics)


@dataclass
class PersonMatch:
    person_id: int
    person_name: str
    confidence: float
    correction_status: Optional[str] = None


@dataclass
class PhotoMatch:
    """Compact record of one photo's effective matches, shared by every matched person."""
    photo_path: str
    photo_hash: str
    matches: List[PersonMatch]
    from_cache: bool
    faces_detected: Optional[int] = None


@dataclass
class ScanProgress:
    total: int
    processed: int
    matched: int
    new_matched: int
    cached: int
    current_photo: str


@dataclass
class VerboseInfo:
    path: str
    from_cache: bool
    matches: List[PersonMatch]
    diagnostics: Optional[SearchDiagnostics] = None


@dataclass
class ScanStats:
    photos_processed: int = 0
    photos_cached: int = 0
    matches_found: int = 0
    new_matched: int = 0
    new_scans: int = 0
    failed: int = 0


@dataclass
class ScanResult:
    person_photos: Dict[str, List[PhotoMatch]]
    stats: ScanStats
    created_persons: List[Person] = field(default_factory=list)


@dataclass
class DbStats:
    total_photos: int
    photos_with_matches: int
    total_corrections: int
    approved_count: int
    rejected_count: int
    false_negative_count: int
    total_persons: int
    last_scan: Optional[ScanRun] = None
