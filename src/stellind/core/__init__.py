"""Core data models, configuration and errors.

This package provides:
- Data models (Position, RawEvent, IndexedEvent, derived-state rows)
- Configuration classes (IndexerConfig, IngestConfig, RetryPolicy)
- The error taxonomy (IndexerError and subclasses)
"""

from stellind.core.config import IndexerConfig, IngestConfig, RetryPolicy
from stellind.core.errors import (
    DecodeError,
    IndexerError,
    IntegrityError,
    InvalidTransition,
    MissingEntityError,
    OrderingViolation,
    ProjectionError,
    TransientStorageError,
)
from stellind.core.models import Checkpoint, IndexedEvent, Position, RawEvent

__all__ = [
    "IndexerConfig",
    "IngestConfig",
    "RetryPolicy",
    "DecodeError",
    "IndexerError",
    "IntegrityError",
    "InvalidTransition",
    "MissingEntityError",
    "OrderingViolation",
    "ProjectionError",
    "TransientStorageError",
    "Checkpoint",
    "IndexedEvent",
    "Position",
    "RawEvent",
]
