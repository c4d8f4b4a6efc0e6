"""
Face Registry Module

Registration and identification workflows. Combines the embedder, the
enrollment store and the identity matcher, and turns every result or
recoverable error into a user-displayable Outcome.
"""

import cv2
import numpy as np
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Any, Mapping, Union

from .embedding_generator import Embedder
from .enrollment_store import EnrollmentRecord, EnrollmentStore, InMemoryEnrollmentStore
from .errors import (
    CameraUnavailable,
    EmbedderLoadFailure,
    NoFaceDetected,
    SessionStateError,
    ValidationError,
)
from .matcher import DEFAULT_THRESHOLD, IdentityMatcher, MatchResult
from .session import CaptureSession, SessionStatus

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.bmp')


@dataclass(frozen=True)
class Outcome:
    """Modal-style message returned by a workflow."""

    ok: bool
    title: str
    message: str
    record: Optional[EnrollmentRecord] = None
    match: Optional[MatchResult] = None

    def __str__(self) -> str:
        return f"{self.title}: {self.message}"


class FaceRegistry:
    """Register and identify faces against an in-memory gallery."""

    def __init__(self, config: Dict[str, Any], embedder: Embedder,
                 store: Optional[EnrollmentStore] = None,
                 matcher: Optional[IdentityMatcher] = None):
        """
        Initialize face registry.

        Args:
            config: Configuration dictionary
            embedder: Face embedding capability
            store: Gallery implementation (in-memory by default)
            matcher: Identity matcher (threshold from config by default)
        """
        self.config = config
        self.registration_config = config.get('registration', {})
        self.recognition_config = config.get('recognition', {})

        # Registration settings
        self.required_fields = list(self.registration_config.get('required_fields', ['name']))
        self.label_field = self.registration_config.get('label_field', 'name')
        self.allow_duplicate_labels = self.registration_config.get('allow_duplicate_labels', True)
        if self.label_field not in self.required_fields:
            self.required_fields.insert(0, self.label_field)

        self.embedder = embedder
        self.store = store if store is not None else InMemoryEnrollmentStore()
        self.matcher = matcher or IdentityMatcher(
            self.recognition_config.get('distance_threshold', DEFAULT_THRESHOLD)
        )

        self.features_enabled = False
        self.load_error: Optional[str] = None

        self.reset_statistics()

        logger.info("Face registry created")

    async def initialize(self) -> bool:
        """
        Load the embedder.

        A load failure disables registration and identification but is not
        raised; the host application keeps running.

        Returns:
            True if the features are available
        """
        try:
            await self.embedder.load()
        except EmbedderLoadFailure as e:
            self.features_enabled = False
            self.load_error = e.message
            logger.error(f"Face recognition disabled: {e.message}")
            return False

        self.features_enabled = True
        self.load_error = None
        logger.info("Face registry initialized successfully")
        return True

    def _unavailable(self) -> Outcome:
        return Outcome(
            ok=False,
            title="Face recognition unavailable",
            message=self.load_error or EmbedderLoadFailure.user_message
        )

    def validate_registration(self, attributes: Optional[Mapping[str, Any]]) -> Dict[str, str]:
        """
        Check the registration form.

        Args:
            attributes: Form values

        Returns:
            Cleaned attributes

        Raises:
            ValidationError: If a required field is blank or the label is taken
        """
        attributes = attributes or {}
        clean = {
            str(key): str(value).strip()
            for key, value in attributes.items()
            if value is not None
        }

        missing = [name for name in self.required_fields if not clean.get(name)]
        if missing:
            logger.warning(f"Registration missing fields: {', '.join(missing)}")
            raise ValidationError()

        label = clean[self.label_field]
        if not self.allow_duplicate_labels and label in self.store.labels():
            raise ValidationError(f"'{label}' is already registered.")

        return clean

    def register(self, attributes: Optional[Mapping[str, Any]], embedding: Any) -> Outcome:
        """
        Register a captured face.

        Args:
            attributes: Form values; the label field names the identity
            embedding: Captured face embedding

        Returns:
            Outcome to display
        """
        if not self.features_enabled:
            return self._unavailable()

        try:
            clean = self.validate_registration(attributes)
            label = clean.pop(self.label_field)
            record = self.store.enroll(label, clean, embedding)
        except ValidationError as e:
            self.stats['failed_registrations'] += 1
            return Outcome(ok=False, title="Registration failed", message=e.message)

        self.stats['registrations'] += 1
        return Outcome(
            ok=True,
            title="Registration complete",
            message="Face Registered Successfully!",
            record=record
        )

    def identify(self, embedding: Any) -> Outcome:
        """
        Identify a captured face.

        Args:
            embedding: Captured face embedding

        Returns:
            Outcome to display
        """
        if not self.features_enabled:
            return self._unavailable()

        if self.store.is_empty():
            self.stats['identifications'] += 1
            self.stats['unknown'] += 1
            return Outcome(
                ok=False,
                title="No match",
                message="No one has been registered yet.",
                match=self.matcher.find_best_match(embedding, ())
            )

        try:
            match = self.matcher.find_best_match(embedding, self.store.all_records())
        except ValueError as e:
            logger.error(f"Identification failed: {e}")
            return Outcome(ok=False, title="Identification failed", message=str(e))

        self.stats['identifications'] += 1
        if not match.accepted:
            self.stats['unknown'] += 1
            logger.info(f"Unknown face (closest distance {match.distance:.3f})")
            return Outcome(ok=False, title="No match", message="No match found.", match=match)

        self.stats['matches'] += 1
        logger.info(f"Identified as {match}")
        return Outcome(
            ok=True,
            title="Identified",
            message=f"Identified as: {match.label}",
            match=match
        )

    async def _capture(self, session: CaptureSession) -> Union[np.ndarray, Outcome]:
        """Drive ``session`` to a captured embedding or a failure Outcome."""
        try:
            if session.status in (SessionStatus.IDLE, SessionStatus.FAILED):
                await session.start()
            await session.capture()
        except CameraUnavailable as e:
            return Outcome(ok=False, title="Camera unavailable", message=e.message)
        except NoFaceDetected as e:
            self.stats['no_face'] += 1
            return Outcome(ok=False, title="No face detected", message=e.message)
        except SessionStateError as e:
            return Outcome(ok=False, title="Capture failed", message=e.message)
        except Exception as e:
            logger.error(f"Error capturing face: {e}")
            self.stats['capture_errors'] += 1
            return Outcome(ok=False, title="Capture failed", message=f"Capture failed: {e}")

        return await session.consume()

    async def capture_and_register(self, session: CaptureSession,
                                   attributes: Optional[Mapping[str, Any]]) -> Outcome:
        """
        Capture a face through ``session`` and register it.

        The form is validated before the camera is touched. When no face is
        found the session stays capturing so the caller can retry.
        """
        if not self.features_enabled:
            return self._unavailable()

        try:
            self.validate_registration(attributes)
        except ValidationError as e:
            self.stats['failed_registrations'] += 1
            return Outcome(ok=False, title="Registration failed", message=e.message)

        captured = await self._capture(session)
        if isinstance(captured, Outcome):
            return captured
        return self.register(attributes, captured)

    async def capture_and_identify(self, session: CaptureSession) -> Outcome:
        """Capture a face through ``session`` and identify it."""
        if not self.features_enabled:
            return self._unavailable()

        captured = await self._capture(session)
        if isinstance(captured, Outcome):
            return captured
        return self.identify(captured)

    async def load_labeled_images(self, source: Union[str, Mapping[str, str]]) -> List[EnrollmentRecord]:
        """
        Seed the gallery from reference images.

        Args:
            source: Directory of ``<label>.<ext>`` images, or a label -> path mapping

        Returns:
            Records created, in label order

        Raises:
            NoFaceDetected: If a reference image contains no face
            ValidationError: If an image cannot be read
        """
        if isinstance(source, str):
            paths = {}
            for filename in sorted(os.listdir(source)):
                label, ext = os.path.splitext(filename)
                if ext.lower() in IMAGE_EXTENSIONS:
                    paths[label] = os.path.join(source, filename)
        else:
            paths = dict(source)

        if not self.embedder.is_loaded:
            await self.embedder.load()

        records = []
        for label, path in paths.items():
            image = cv2.imread(path)
            if image is None:
                raise ValidationError(f"Cannot read image for label: {label}")

            embedding = await self.embedder.detect(image)
            if embedding is None:
                raise NoFaceDetected(f"No face detected for label: {label}")

            records.append(self.store.enroll(label, {'source': path}, embedding))

        logger.info(f"Loaded {len(records)} labeled reference images")
        return records

    def list_all_people(self) -> List[Dict[str, Any]]:
        """
        Get a list of all enrolled records.

        Returns:
            List of record information dictionaries
        """
        return [
            {
                'label': record.label,
                'attributes': dict(record.attributes),
                'enrolled_at': record.enrolled_at,
                'record_id': record.record_id
            }
            for record in self.store.all_records()
        ]

    def get_recognition_statistics(self) -> Dict[str, Any]:
        """Get registration and identification statistics."""
        return {
            **self.stats,
            **self.store.get_statistics(),
            'threshold': self.matcher.threshold,
            'features_enabled': self.features_enabled,
            'match_rate': self.stats['matches'] / max(1, self.stats['identifications'])
        }

    def reset_statistics(self):
        """Reset workflow statistics."""
        self.stats = {
            'registrations': 0,
            'failed_registrations': 0,
            'identifications': 0,
            'matches': 0,
            'unknown': 0,
            'no_face': 0,
            'capture_errors': 0,
            'session_start': datetime.now().isoformat()
        }
