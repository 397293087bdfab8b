"""
Custom exception hierarchy for face albums.

Item-level failures during a scan are caught by the scanner; everything
raised here outside a scan propagates to the CLI.
"""


class FaceAlbumsError(Exception):
    """Base exception for all face albums errors."""
    pass


class FileHashError(FaceAlbumsError):
    """Raised when file hashing fails."""
    pass


class RecognitionError(FaceAlbumsError):
    """Raised when the recognition service fails for a reason other than 'no face'."""
    pass


class ScanPreconditionError(FaceAlbumsError):
    """Raised before a scan starts when its search mode lacks trained data."""
    pass


class CorrectionError(FaceAlbumsError):
    """Raised when a review correction cannot be recorded."""
    pass
