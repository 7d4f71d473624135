"""Raw event sources.

- `MemoryEventSource`: in-process lists of `RawEvent`, delivered in the order
  given (duplicates and out-of-order events included). Used by tests and by
  callers that already hold events.
- `JsonlEventSource`: NDJSON file, one raw event per line, validated with
  pydantic before it reaches the pipeline.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Generator, Iterable, Iterator
from datetime import datetime, timezone
from itertools import islice
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from stellind.core.models import Position, RawEvent, normalize_tx_hash


class MemoryEventSource:
    def __init__(self, events: Iterable[RawEvent], *, honor_resume: bool = True) -> None:
        self._by_contract: dict[str, list[RawEvent]] = {}
        for ev in events:
            self._by_contract.setdefault(ev.contract_id, []).append(ev)
        self._honor_resume = honor_resume

    async def contracts(self) -> list[str]:
        return list(self._by_contract)

    async def stream(self, contract_id: str, after: Position | None) -> AsyncIterator[RawEvent]:
        for ev in self._by_contract.get(contract_id, []):
            if self._honor_resume and after is not None and ev.position <= after:
                continue
            yield ev
            await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# NDJSON
# ---------------------------------------------------------------------------


class RawEventRecord(BaseModel):
    """One NDJSON line."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    contract_id: str = Field(min_length=1)
    topic: str
    payload: Any
    ledger: int = Field(ge=0)
    tx_hash: str
    event_index: int = Field(ge=0)
    ledger_closed_at: datetime

    @field_validator("tx_hash")
    @classmethod
    def _tx_hash(cls, v: str) -> str:
        return normalize_tx_hash(v)

    def to_raw_event(self) -> RawEvent:
        closed = self.ledger_closed_at
        if closed.tzinfo is None:
            closed = closed.replace(tzinfo=timezone.utc)
        return RawEvent(
            contract_id=self.contract_id,
            topic=self.topic,
            payload=self.payload,
            position=Position(self.ledger, self.tx_hash, self.event_index),
            ledger_closed_at=closed,
        )


def iter_jsonl(path: str | Path) -> Generator[RawEvent, None, None]:
    """Parse an NDJSON file of raw events line by line; blank lines are ignored.

    Raises:
        ValueError: on the first malformed line, with its path and line number.
    """
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = RawEventRecord.model_validate(json.loads(line))
            except (json.JSONDecodeError, ValidationError) as e:
                raise ValueError(f"{path}:{lineno}: invalid raw event: {e}") from e
            yield record.to_raw_event()


def _take(events: Iterator[RawEvent], n: int) -> list[RawEvent]:
    return list(islice(events, n))


def _contract_ids(path: Path) -> list[str]:
    return list(dict.fromkeys(ev.contract_id for ev in iter_jsonl(path)))


class JsonlEventSource:
    """
    Raw events read from an NDJSON file (file order is delivery order).

    `stream` reads the file lazily, `chunk_lines` lines at a time off the event
    loop, so a consumer that stops pulling also stops the reading.
    """

    def __init__(self, path: str | Path, *, honor_resume: bool = True, chunk_lines: int = 256) -> None:
        if chunk_lines < 1:
            raise ValueError("chunk_lines must be >= 1")
        self.path = Path(path)
        self._honor_resume = honor_resume
        self._chunk_lines = chunk_lines

    async def contracts(self) -> list[str]:
        return await asyncio.to_thread(_contract_ids, self.path)

    async def stream(self, contract_id: str, after: Position | None) -> AsyncIterator[RawEvent]:
        events = iter_jsonl(self.path)
        try:
            while chunk := await self._next_chunk(events):
                for ev in chunk:
                    if ev.contract_id != contract_id:
                        continue
                    if self._honor_resume and after is not None and ev.position <= after:
                        continue
                    yield ev
        finally:
            events.close()

    async def _next_chunk(self, events: Iterator[RawEvent]) -> list[RawEvent]:
        task = asyncio.ensure_future(asyncio.to_thread(_take, events, self._chunk_lines))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # the file must stay open until the in-flight read returns
            await asyncio.wait([task])
            raise
