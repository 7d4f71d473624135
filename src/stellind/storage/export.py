from __future__ import annotations

import logging
import os
from pathlib import Path

import duckdb
import pyarrow as pa
import pyarrow.parquet as pq

from stellind.storage import sql_queries
from stellind.storage.queries import ordered_select

logger = logging.getLogger(__name__)

EXPORT_TABLES: tuple[str, ...] = (*sql_queries.DERIVED_TABLES, "checkpoints")


def _atomic_write(out_path: Path, table: pa.Table, codec: str) -> Path:
    """Write Parquet atomically (tmp + replace)."""
    tmp = out_path.with_suffix(".tmp")
    pq.write_table(table, tmp, compression=codec)
    os.replace(tmp, out_path)
    return out_path


def export_snapshot(
    con: duckdb.DuckDBPyConnection,
    out_dir: str | Path,
    *,
    tables: tuple[str, ...] = EXPORT_TABLES,
    codec: str = "zstd",
) -> list[Path]:
    """
    Write one `<table>.parquet` per table into `out_dir`.

    Rows are written in the canonical table order, so two exports of the same
    state produce the same row sequence. Empty tables still get a file (with
    schema only).
    """
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for name in tables:
        tbl = con.sql(ordered_select(name)).to_arrow_table()
        path = _atomic_write(out / f"{name}.parquet", tbl, codec)
        logger.info("wrote %s (rows=%d, cols=%d)", path, tbl.num_rows, len(tbl.schema))
        written.append(path)
    return written
