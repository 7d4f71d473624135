from datetime import datetime, timezone
from pathlib import Path

import pytest

from stellind.core.use_cases.pipeline import EventPipeline
from stellind.projection.engine import ProjectionEngine
from stellind.storage.duckdb_store import DuckDBStore
from stellind.storage.queries import snapshot

FIXED_NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def store():
    s = DuckDBStore(":memory:", threads=1)
    s.init_schema()
    yield s
    s.close()


@pytest.fixture
def file_store(tmp_path: Path):
    path = tmp_path / "index.duckdb"
    s = DuckDBStore(path, threads=1)
    s.init_schema()
    yield s
    s.close()


@pytest.fixture
def engine() -> ProjectionEngine:
    return ProjectionEngine()


@pytest.fixture
def pipeline() -> EventPipeline:
    return EventPipeline(clock=lambda: FIXED_NOW)


@pytest.fixture
def state():
    """Exact contents of the derived tables, for before/after comparisons."""

    def _state(s: DuckDBStore) -> dict[str, list[tuple]]:
        con = s.connection()
        try:
            return snapshot(con)
        finally:
            con.close()

    return _state
