"""
queries.py
----------

Read-only access to derived state for downstream consumers.

Each function takes an open DuckDB connection (or cursor) and returns a
pandas DataFrame. Big-integer columns come back as their exact decimal
strings; convert them with `int()` rather than casting to float.

`snapshot` returns plain Python rows for exact comparison (rebuild checks).
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import duckdb
import pandas as pd

from . import sql_queries


# =====================================================================
# DuckDB connection setup
# =====================================================================

@contextmanager
def get_connection(
    path: str | Path,
    *,
    memory_limit: str = "1GB",
    threads: int = 4,
) -> Iterator[duckdb.DuckDBPyConnection]:
    """Read-only DuckDB connection with PRAGMAs applied.

    Args:
        path: Database file written by the indexer.
        memory_limit: Maximum memory allocation for DuckDB.
        threads: Number of threads for parallel execution.
    """
    con = duckdb.connect(str(path), read_only=True)
    try:
        con.execute(f"PRAGMA threads={int(threads)}")
        con.execute(f"PRAGMA memory_limit='{memory_limit}'")
        yield con
    finally:
        con.close()


# =====================================================================
# TABLES
# =====================================================================

def fetch_table(con: duckdb.DuckDBPyConnection, table: str) -> pd.DataFrame:
    """Whole table in its canonical order."""
    return con.execute(ordered_select(table)).df()


def fetch_trades(con: duckdb.DuckDBPyConnection, contract_id: str | None = None, trader: str | None = None) -> pd.DataFrame:
    return con.execute(sql_queries.FETCH_TRADES_QUERY, [contract_id, trader]).df()


def fetch_proposals(
    con: duckdb.DuckDBPyConnection,
    contract_id: str | None = None,
    status: str | None = None,
) -> pd.DataFrame:
    """Proposals in creation order, optionally filtered by contract and status."""
    return con.execute(sql_queries.FETCH_PROPOSALS_QUERY, [contract_id, status]).df()


def fetch_approvals(con: duckdb.DuckDBPyConnection, contract_id: str, proposal_id: int) -> pd.DataFrame:
    return con.execute(sql_queries.FETCH_APPROVALS_QUERY, [contract_id, str(proposal_id)]).df()


def fetch_rewards(con: duckdb.DuckDBPyConnection, contract_id: str | None = None, user: str | None = None) -> pd.DataFrame:
    return con.execute(sql_queries.FETCH_REWARDS_QUERY, [contract_id, user]).df()


def fetch_grants(
    con: duckdb.DuckDBPyConnection,
    contract_id: str | None = None,
    beneficiary: str | None = None,
) -> pd.DataFrame:
    return con.execute(sql_queries.FETCH_GRANTS_QUERY, [contract_id, beneficiary]).df()


def fetch_grant_claims(con: duckdb.DuckDBPyConnection, contract_id: str, grant_id: int) -> pd.DataFrame:
    return con.execute(sql_queries.FETCH_GRANT_CLAIMS_QUERY, [contract_id, str(grant_id)]).df()


# =====================================================================
# OPERATIONS
# =====================================================================

def fetch_checkpoints(con: duckdb.DuckDBPyConnection) -> pd.DataFrame:
    return con.execute(sql_queries.FETCH_CHECKPOINTS_QUERY).df()


def fetch_event_errors(con: duckdb.DuckDBPyConnection, contract_id: str | None = None) -> pd.DataFrame:
    """Entity-level failures (integrity / invalid transition) recorded by the projection."""
    return con.execute(sql_queries.FETCH_EVENT_ERRORS_QUERY, [contract_id]).df()


def fetch_failed_events(con: duckdb.DuckDBPyConnection, contract_id: str | None = None) -> pd.DataFrame:
    """Logged events whose payload could not be decoded."""
    return con.execute(sql_queries.FETCH_FAILED_EVENTS_QUERY, [contract_id]).df()


def fetch_status_summary(con: duckdb.DuckDBPyConnection) -> pd.DataFrame:
    return con.execute(sql_queries.EVENT_STATUS_SUMMARY_QUERY).df()


def snapshot(
    con: duckdb.DuckDBPyConnection,
    tables: tuple[str, ...] = sql_queries.DERIVED_TABLES,
) -> dict[str, list[tuple]]:
    """Exact, ordered contents of `tables` (derived state by default)."""
    return {t: con.execute(ordered_select(t)).fetchall() for t in tables}


def ordered_select(table: str) -> str:
    """`SELECT *` for a known table in its canonical order."""
    try:
        order_by = sql_queries.TABLE_ORDER_BY[table]
    except KeyError:
        raise ValueError(f"unknown table {table!r}") from None
    return sql_queries.SELECT_TABLE_ORDERED.format(table=table, order_by=order_by)
