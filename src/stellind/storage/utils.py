"""Column codecs between domain values and DuckDB parameters."""

from __future__ import annotations

from datetime import datetime, timezone

from stellind.core.models import Position


def int_to_db(v: int | None) -> str | None:
    """Exact decimal string for a big on-chain integer."""
    return None if v is None else str(v)


def int_from_db(v: str | None) -> int | None:
    return None if v is None else int(v)


def ts_to_db(dt: datetime) -> datetime:
    """Naive UTC timestamp (aware values are converted, naive ones assumed UTC)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def ts_from_db(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc)


def pos_params(p: Position | None) -> tuple[int | None, str | None, int | None]:
    if p is None:
        return (None, None, None)
    return (p.ledger, p.tx_hash, p.event_index)


def pos_from_db(ledger: int | None, tx_hash: str | None, event_index: int | None) -> Position | None:
    if ledger is None or tx_hash is None or event_index is None:
        return None
    return Position(int(ledger), tx_hash, int(event_index))
