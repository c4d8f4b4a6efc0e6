"""
Enrollment Store Module

Holds the gallery of enrolled identities. The gallery lives in process memory
and is append-only; records are never mutated or removed.
"""

import numpy as np
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, List, Optional, Any, Mapping, Sequence, Tuple

from .errors import ValidationError

logger = logging.getLogger(__name__)


def as_embedding(values: Any) -> np.ndarray:
    """
    Convert an embedding-like sequence into an immutable float vector.

    Args:
        values: Sequence or array of numbers

    Returns:
        Read-only 1-D float64 array

    Raises:
        ValidationError: If the vector is empty or holds non-finite values
    """
    if values is None:
        raise ValidationError("Embedding is missing")

    try:
        embedding = np.array(values, dtype=np.float64).ravel()
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Embedding is not numeric: {e}")

    if embedding.size == 0:
        raise ValidationError("Embedding is empty")
    if not np.all(np.isfinite(embedding)):
        raise ValidationError("Embedding contains NaN or infinite values")

    embedding.flags.writeable = False
    return embedding


@dataclass(frozen=True, eq=False)
class EnrollmentRecord:
    """A single enrolled identity."""

    label: str
    attributes: Mapping[str, str]
    embedding: np.ndarray = field(repr=False)
    enrolled_at: str = field(default_factory=lambda: datetime.now().isoformat())
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def dimension(self) -> int:
        return int(self.embedding.shape[0])


class EnrollmentStore(ABC):
    """Interface of a gallery of enrolled identities."""

    @abstractmethod
    def enroll(self, label: str, attributes: Optional[Mapping[str, Any]],
               embedding: Any) -> EnrollmentRecord:
        """Append a new record to the gallery."""

    @abstractmethod
    def all_records(self) -> Tuple[EnrollmentRecord, ...]:
        """Snapshot of all records in insertion order."""

    def is_empty(self) -> bool:
        return len(self.all_records()) == 0

    def __len__(self) -> int:
        return len(self.all_records())

    def labels(self) -> List[str]:
        """Unique labels in the order they were first enrolled."""
        seen = {}
        for record in self.all_records():
            seen.setdefault(record.label, None)
        return list(seen)

    def records_for(self, label: str) -> List[EnrollmentRecord]:
        return [record for record in self.all_records() if record.label == label]

    def get_statistics(self) -> Dict[str, Any]:
        """Get gallery statistics."""
        records = self.all_records()
        return {
            'total_records': len(records),
            'total_labels': len(self.labels()),
            'embedding_dimension': records[0].dimension if records else None
        }


class InMemoryEnrollmentStore(EnrollmentStore):
    """Default gallery kept in process memory and lost on restart."""

    def __init__(self, records: Optional[Sequence[EnrollmentRecord]] = None):
        self._records: List[EnrollmentRecord] = []
        self.embedding_dim = None

        for record in records or ():
            self._append(record)

        logger.info(f"Enrollment store initialized with {len(self._records)} records")

    def enroll(self, label: str, attributes: Optional[Mapping[str, Any]],
               embedding: Any) -> EnrollmentRecord:
        """
        Enroll a new identity.

        Duplicate labels are accepted; every record stays a separate
        candidate at match time.

        Args:
            label: Display name of the identity
            attributes: Free-form metadata (age, roll number, branch, ...)
            embedding: Face embedding vector

        Returns:
            The stored record

        Raises:
            ValidationError: On a blank label or an unusable embedding
        """
        if not isinstance(label, str) or not label.strip():
            raise ValidationError("Label must be a non-empty string")

        vector = as_embedding(embedding)

        # Clean attributes to plain strings
        clean_attributes = {}
        for key, value in (attributes or {}).items():
            if value is not None:
                clean_attributes[str(key)] = str(value)

        record = EnrollmentRecord(
            label=label.strip(),
            attributes=MappingProxyType(clean_attributes),
            embedding=vector
        )
        self._append(record)

        logger.info(f"Enrolled '{record.label}' ({len(self._records)} records in gallery)")
        return record

    def _append(self, record: EnrollmentRecord):
        if self.embedding_dim is None:
            self.embedding_dim = record.dimension
        elif record.dimension != self.embedding_dim:
            raise ValidationError(
                f"Embedding dimension mismatch: {record.dimension} vs {self.embedding_dim}"
            )
        self._records.append(record)

    def all_records(self) -> Tuple[EnrollmentRecord, ...]:
        return tuple(self._records)

    def is_empty(self) -> bool:
        return not self._records

    def __len__(self) -> int:
        return len(self._records)
