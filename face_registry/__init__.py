"""
Face Registry

Webcam face registration and identification: capture a face, enroll it with
a few details, and later identify it against the enrolled gallery.
"""

__version__ = "1.0.0"
__author__ = "Face Registry Team"

from .enrollment_store import EnrollmentRecord, EnrollmentStore, InMemoryEnrollmentStore
from .matcher import IdentityMatcher, MatchResult, find_best_match
from .session import CaptureSession, LiveOverlay, SessionStatus
from .recognizer import FaceRegistry, Outcome

__all__ = [
    "EnrollmentRecord",
    "EnrollmentStore",
    "InMemoryEnrollmentStore",
    "IdentityMatcher",
    "MatchResult",
    "find_best_match",
    "CaptureSession",
    "LiveOverlay",
    "SessionStatus",
    "FaceRegistry",
    "Outcome"
]
