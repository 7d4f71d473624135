from __future__ import annotations

from datetime import datetime, timezone

import duckdb

from stellind.core.errors import OrderingViolation
from stellind.core.models import Checkpoint, Position
from stellind.storage import sql_queries as q
from stellind.storage.utils import pos_from_db, pos_params, ts_to_db


class CheckpointTracker:
    """Per-contract resume position; sole writer of the `checkpoints` table.

    Runs on the batch transaction's cursor, so an advance only becomes visible
    together with the projection writes it covers.
    """

    def __init__(self, cursor: duckdb.DuckDBPyConnection) -> None:
        self._cur = cursor

    def resume_position(self, contract_id: str) -> Position | None:
        row = self._cur.execute(q.SELECT_CHECKPOINT, [contract_id]).fetchone()
        return pos_from_db(*row) if row else None

    def advance(self, contract_id: str, position: Position) -> None:
        """Move the checkpoint forward; regressions and repeats raise `OrderingViolation`."""
        current = self.resume_position(contract_id)
        now = ts_to_db(datetime.now(timezone.utc))
        if current is None:
            self._cur.execute(q.INSERT_CHECKPOINT, [contract_id, *pos_params(position), now])
            return
        if position <= current:
            raise OrderingViolation(
                f"checkpoint cannot move from {current} to {position}",
                contract_id=contract_id,
                position=position,
            )
        self._cur.execute(q.UPDATE_CHECKPOINT, [*pos_params(position), now, contract_id])

    def all(self) -> list[Checkpoint]:
        return [
            Checkpoint(contract_id=cid, position=Position(int(ledger), tx, int(idx)))
            for cid, ledger, tx, idx in self._cur.execute(q.SELECT_CHECKPOINTS).fetchall()
        ]
