from __future__ import annotations

from .core.models import IndexedEvent, Position, RawEvent
from .decoding.decoder import decode_event
from .decoding.topics import EventTopic, classify
from .projection.engine import ProjectionEngine
from .storage.duckdb_store import DuckDBStore

__all__ = [
    "IndexedEvent",
    "Position",
    "RawEvent",
    "decode_event",
    "EventTopic",
    "classify",
    "ProjectionEngine",
    "DuckDBStore",
]
