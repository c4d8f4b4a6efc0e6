"""
Identity Matching Module

Classifies a query embedding against the enrolled gallery using Euclidean
distance and a maximum-distance acceptance threshold.
"""

import math
import numpy as np
import logging
from dataclasses import dataclass
from typing import List, Sequence, Any

from .enrollment_store import EnrollmentRecord

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = 'unknown'
DEFAULT_THRESHOLD = 0.6


@dataclass(frozen=True)
class MatchResult:
    """Outcome of a single identification."""

    label: str
    distance: float
    accepted: bool

    def __str__(self) -> str:
        return f"{self.label} ({self.distance:.2f})"


def _validate_threshold(threshold: float) -> float:
    threshold = float(threshold)
    if math.isnan(threshold) or threshold < 0 or math.isinf(threshold):
        raise ValueError(f"Threshold must be a finite non-negative number, got {threshold}")
    return threshold


def euclidean_distances(query: Any, gallery: Sequence[EnrollmentRecord]) -> np.ndarray:
    """
    Compute the Euclidean distance from a query to every gallery record.

    Args:
        query: Query embedding vector
        gallery: Enrolled records

    Returns:
        Array of distances in gallery order
    """
    query_vector = np.asarray(query, dtype=np.float64).ravel()

    if len(gallery) == 0:
        return np.empty(0, dtype=np.float64)

    embeddings = np.stack([record.embedding for record in gallery])
    if embeddings.shape[1] != query_vector.shape[0]:
        raise ValueError(
            f"Query embedding dimension mismatch: {query_vector.shape[0]} vs {embeddings.shape[1]}"
        )

    return np.sqrt(np.sum((embeddings - query_vector) ** 2, axis=1))


def find_best_match(query: Any, gallery: Sequence[EnrollmentRecord],
                    threshold: float = DEFAULT_THRESHOLD) -> MatchResult:
    """
    Find the closest enrolled identity for a query embedding.

    The record with the smallest distance wins; among equal distances the
    earliest enrolled record wins. A winner farther than ``threshold`` is
    reported as unknown.

    Args:
        query: Query embedding vector
        gallery: Enrolled records in insertion order
        threshold: Maximum accepted distance

    Returns:
        MatchResult for the query
    """
    threshold = _validate_threshold(threshold)

    if len(gallery) == 0:
        return MatchResult(label=UNKNOWN_LABEL, distance=math.inf, accepted=False)

    distances = euclidean_distances(query, gallery)

    # argmin returns the first occurrence of the minimum
    best_index = int(np.argmin(distances))
    best_distance = float(distances[best_index])

    if best_distance > threshold:
        return MatchResult(label=UNKNOWN_LABEL, distance=best_distance, accepted=False)

    return MatchResult(
        label=gallery[best_index].label,
        distance=best_distance,
        accepted=True
    )


class IdentityMatcher:
    """Matcher bound to a fixed acceptance threshold."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = _validate_threshold(threshold)

    def find_best_match(self, query: Any,
                        gallery: Sequence[EnrollmentRecord]) -> MatchResult:
        result = find_best_match(query, gallery, self.threshold)
        logger.debug(f"Best match: {result}")
        return result

    def match_all(self, queries: Sequence[Any],
                  gallery: Sequence[EnrollmentRecord]) -> List[MatchResult]:
        """Match several query embeddings (one per detected face)."""
        return [find_best_match(query, gallery, self.threshold) for query in queries]
