"""DuckDB store: connection setup, per-worker sessions and unit of work.

- `DuckDBStore` owns the database connection (PRAGMAs applied once) and the
  schema.
- `DuckDBSession` wraps one cursor; each contract worker gets its own, so
  transactions from different workers are isolated by DuckDB.
- `UnitOfWork` exposes the event log, checkpoint tracker and projection
  repository bound to the session's open transaction.

DuckDB transaction conflicts and IO failures surface as
`TransientStorageError`; everything else propagates unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import duckdb

from stellind.core.errors import TransientStorageError
from stellind.storage import sql_queries as q
from stellind.storage.checkpoints import CheckpointTracker
from stellind.storage.event_log import IndexedEventLog
from stellind.storage.projections import DuckDBProjectionRepository

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    duckdb.TransactionException,
    duckdb.IOException,
)


@dataclass(slots=True)
class UnitOfWork:
    """Repositories sharing one open transaction."""

    events: IndexedEventLog
    checkpoints: CheckpointTracker
    projections: DuckDBProjectionRepository


class DuckDBSession:
    """One cursor, one transaction at a time."""

    def __init__(self, cursor: duckdb.DuckDBPyConnection) -> None:
        self._cur = cursor

    @property
    def cursor(self) -> duckdb.DuckDBPyConnection:
        return self._cur

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(
            events=IndexedEventLog(self._cur),
            checkpoints=CheckpointTracker(self._cur),
            projections=DuckDBProjectionRepository(self._cur),
        )

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        """Commit on success, roll back on any exception."""
        try:
            self._cur.begin()
        except TRANSIENT_ERRORS as e:
            raise TransientStorageError(f"begin failed: {e}") from e
        try:
            yield self.unit_of_work()
        except BaseException as exc:
            self._rollback()
            if isinstance(exc, TRANSIENT_ERRORS):
                raise TransientStorageError(f"transaction aborted: {exc}") from exc
            raise
        try:
            self._cur.commit()
        except TRANSIENT_ERRORS as e:
            self._rollback()
            raise TransientStorageError(f"commit failed: {e}") from e

    def _rollback(self) -> None:
        try:
            self._cur.rollback()
        except duckdb.Error as e:
            # Nothing left to roll back when DuckDB already aborted the transaction.
            logger.debug("rollback after failure: %s", e)

    def close(self) -> None:
        self._cur.close()


class DuckDBStore:
    """Database handle for the indexer.

    Args:
        path: Database file, or ``":memory:"``.
        threads: DuckDB worker threads.
        memory_limit: DuckDB memory cap (e.g. ``"1GB"``).
        read_only: Open without write access (consumers of derived state).
    """

    def __init__(
        self,
        path: str | Path = ":memory:",
        *,
        threads: int = 4,
        memory_limit: str = "1GB",
        read_only: bool = False,
    ) -> None:
        self.path = str(path)
        self._con = duckdb.connect(self.path, read_only=read_only)
        self._con.execute(f"PRAGMA threads={int(threads)}")
        self._con.execute(f"PRAGMA memory_limit='{memory_limit}'")

    def init_schema(self) -> None:
        for stmt in q.SCHEMA_STATEMENTS:
            self._con.execute(stmt)

    def session(self) -> DuckDBSession:
        """New session on its own cursor."""
        return DuckDBSession(self._con.cursor())

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        """One-off transaction on a fresh session."""
        session = self.session()
        try:
            with session.transaction() as uow:
                yield uow
        finally:
            session.close()

    def connection(self) -> duckdb.DuckDBPyConnection:
        """Fresh cursor for read-only queries."""
        return self._con.cursor()

    def close(self) -> None:
        self._con.close()

    def __enter__(self) -> DuckDBStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
