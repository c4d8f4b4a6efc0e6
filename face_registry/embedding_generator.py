"""
Embedding Generation Module

Defines the Embedder capability: find faces in a BGR frame and turn each
into an embedding vector. The models themselves are external; see
embedding_backends for the library-backed implementations.
"""

import asyncio
import numpy as np
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple
import cv2

from .errors import EmbedderLoadFailure

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]


@dataclass
class Detection:
    """A face found in a frame."""

    box: Box  # (top, right, bottom, left)
    embedding: np.ndarray = field(repr=False)
    landmarks: Dict[str, List[Tuple[int, int]]] = field(default_factory=dict, repr=False)

    @property
    def area(self) -> int:
        top, right, bottom, left = self.box
        return max(0, bottom - top) * max(0, right - left)


def to_rgb(frame: np.ndarray) -> np.ndarray:
    """Convert an OpenCV BGR frame to RGB uint8."""
    if frame.dtype != np.uint8:
        # If normalized [0,1], scale back to [0,255]
        if frame.max() <= 1.0:
            frame = frame * 255
        frame = frame.astype(np.uint8)

    if len(frame.shape) == 2:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2RGB)
    return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)


def normalize_embedding(embedding: np.ndarray) -> np.ndarray:
    """
    Normalize embedding vector using L2 normalization.

    Args:
        embedding: Raw embedding vector

    Returns:
        Normalized embedding vector
    """
    if embedding is None or len(embedding) == 0:
        return embedding

    norm = np.linalg.norm(embedding)
    if norm == 0:
        return embedding

    return embedding / norm


class Embedder(ABC):
    """Face detection + embedding capability."""

    embedding_size = 128

    def __init__(self, config: Dict[str, Any]):
        self.config = config.get('embedding', {})
        self.normalization = self.config.get('normalization', False)
        self.is_loaded = False

    async def load(self):
        """
        Load the underlying model.

        Raises:
            EmbedderLoadFailure: If the model cannot be initialized
        """
        if self.is_loaded:
            return
        try:
            await asyncio.to_thread(self._load_model)
        except EmbedderLoadFailure:
            raise
        except Exception as e:
            logger.debug(f"Failed to load {type(self).__name__}: {e}")
            raise EmbedderLoadFailure(f"Face recognition models could not be loaded: {e}") from e
        self.is_loaded = True
        logger.info(f"{type(self).__name__} loaded ({self.embedding_size}-d embeddings)")

    async def detect(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """
        Embed the most prominent face in a frame.

        Args:
            frame: BGR image

        Returns:
            Embedding of the largest face, or None if no usable face was found
        """
        detections = await self.detect_all(frame)
        if not detections:
            return None
        best = max(detections, key=lambda d: d.area)

        check = validate_embedding(best.embedding, self.embedding_size)
        if not check['valid']:
            logger.warning(f"Discarding face embedding: {check['reason']}")
            return None
        return best.embedding

    async def detect_all(self, frame: np.ndarray) -> List[Detection]:
        """
        Detect and embed every face in a frame.

        Args:
            frame: BGR image

        Returns:
            List of detections (possibly empty)
        """
        if frame is None or frame.size == 0:
            return []
        if not self.is_loaded:
            raise EmbedderLoadFailure("Embedder used before load()")

        detections = await asyncio.to_thread(self._detect_faces, to_rgb(frame))
        if self.normalization:
            for detection in detections:
                detection.embedding = normalize_embedding(detection.embedding)
        return detections

    @abstractmethod
    def _load_model(self):
        """Blocking model initialization."""

    @abstractmethod
    def _detect_faces(self, rgb_image: np.ndarray) -> List[Detection]:
        """Blocking detection on an RGB image."""


def validate_embedding(embedding: np.ndarray, expected_size: Optional[int] = None) -> Dict[str, Any]:
    """
    Validate embedding quality and consistency.

    Args:
        embedding: Generated embedding vector
        expected_size: Dimensionality the embedder is known to produce

    Returns:
        Validation results
    """
    if embedding is None:
        return {'valid': False, 'reason': 'None embedding'}

    if len(embedding) == 0:
        return {'valid': False, 'reason': 'Empty embedding'}

    if expected_size is not None and len(embedding) != expected_size:
        return {'valid': False, 'reason': f'Unexpected embedding size: {len(embedding)}'}

    if np.any(np.isnan(embedding)) or np.any(np.isinf(embedding)):
        return {'valid': False, 'reason': 'NaN or infinite values'}

    magnitude = np.linalg.norm(embedding)
    if magnitude == 0:
        return {'valid': False, 'reason': 'Zero magnitude'}

    return {
        'valid': True,
        'size': len(embedding),
        'magnitude': float(magnitude),
    }
