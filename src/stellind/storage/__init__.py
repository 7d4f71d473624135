"""Storage components backed by DuckDB.

This package provides:
- DuckDBStore / DuckDBSession: connection, per-worker sessions, transactions
- IndexedEventLog: append-only audit log of observed events
- CheckpointTracker: per-contract resume positions
- DuckDBProjectionRepository: derived-state tables
- queries / export: read-only DataFrame access and Parquet snapshots
"""

from stellind.storage.checkpoints import CheckpointTracker
from stellind.storage.duckdb_store import DuckDBSession, DuckDBStore, UnitOfWork
from stellind.storage.event_log import IndexedEventLog
from stellind.storage.projections import DuckDBProjectionRepository

__all__ = [
    "CheckpointTracker",
    "DuckDBProjectionRepository",
    "DuckDBSession",
    "DuckDBStore",
    "IndexedEventLog",
    "UnitOfWork",
]
