from __future__ import annotations

from collections.abc import Iterator

import duckdb

from stellind.core.models import DecodeStatus, IndexedEvent, Position
from stellind.storage import sql_queries as q
from stellind.storage.utils import pos_params, ts_from_db, ts_to_db


def _row_to_event(row: tuple) -> IndexedEvent:
    (contract_id, ledger, tx_hash, event_index, topic, closed_at,
     raw, decoded, status, error, created_at) = row
    return IndexedEvent(
        contract_id=contract_id,
        topic=topic,
        position=Position(int(ledger), tx_hash, int(event_index)),
        ledger_closed_at=ts_from_db(closed_at),
        raw_payload=raw,
        decoded_payload=decoded,
        decode_status=status,
        decode_error=error,
        created_at=ts_from_db(created_at),
    )


class IndexedEventLog:
    """Append-only log of every observed event, keyed by (contract_id, position).

    Records are never updated or deleted. The log is the replay source for
    rebuilding derived tables and the audit trail for decode failures.
    """

    def __init__(self, cursor: duckdb.DuckDBPyConnection) -> None:
        self._cur = cursor

    def append(self, event: IndexedEvent) -> None:
        self._cur.execute(
            q.INSERT_EVENT,
            [
                event.contract_id,
                *pos_params(event.position),
                event.topic,
                ts_to_db(event.ledger_closed_at),
                event.raw_payload,
                event.decoded_payload,
                event.decode_status,
                event.decode_error,
                ts_to_db(event.created_at),
            ],
        )

    def get(self, contract_id: str, position: Position) -> IndexedEvent | None:
        row = self._cur.execute(q.SELECT_EVENT, [contract_id, *pos_params(position)]).fetchone()
        return _row_to_event(row) if row else None

    def iter_events(self, contract_id: str | None = None) -> Iterator[IndexedEvent]:
        """Yield events in position order (per contract when `contract_id` is None)."""
        if contract_id is None:
            rows = self._cur.execute(q.SELECT_EVENTS_ALL).fetchall()
        else:
            rows = self._cur.execute(q.SELECT_EVENTS_FOR_CONTRACT, [contract_id]).fetchall()
        for row in rows:
            yield _row_to_event(row)

    def by_status(self, status: DecodeStatus) -> list[IndexedEvent]:
        return [_row_to_event(r) for r in self._cur.execute(q.SELECT_EVENTS_BY_STATUS, [status]).fetchall()]

    def failures(self) -> list[IndexedEvent]:
        """Decode-failure audit trail."""
        return self.by_status("failed")
