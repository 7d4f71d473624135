from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from stellind.core.errors import DecodeError, IndexerError, OrderingViolation, ProjectionError
from stellind.core.interfaces import ISession, IUnitOfWork
from stellind.core.models import DecodeStatus, EventErrorRecord, IndexedEvent, Position, RawEvent, canonical_json
from stellind.decoding.decoder import decode_event
from stellind.decoding.events import DecodedEvent, Unrecognized
from stellind.decoding.registry import EVENT_SPECS
from stellind.decoding.specs import EventRegistry
from stellind.decoding.topics import classify
from stellind.projection.engine import ApplyOutcome, ProjectionEngine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(kw_only=True)
class BatchResult:
    """
    Counters for one committed batch (or one replay pass).

    `errors` holds every surfaced failure, in event order, so callers can
    report them without reading the log.
    """

    contract_id: str | None = None
    seen: int = 0
    applied: int = 0
    noop: int = 0
    skipped: int = 0
    replayed: int = 0
    decode_failures: int = 0
    unrecognized: int = 0
    ordering_violations: int = 0
    entity_errors: int = 0
    checkpoint: Position | None = None
    errors: list[IndexerError] = field(default_factory=list)

    def count(self, outcome: ApplyOutcome) -> None:
        if outcome is ApplyOutcome.APPLIED:
            self.applied += 1
        elif outcome is ApplyOutcome.NOOP:
            self.noop += 1
        else:
            self.skipped += 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class EventPipeline:
    """
    Classify → decode → log → project → checkpoint, for one contract batch.

    The whole batch runs in one storage transaction: the log appends,
    projection writes and checkpoint advance commit together or not at all.
    Entity-level failures are recorded and the batch goes on; only storage
    errors abort it.
    """

    def __init__(
        self,
        engine: ProjectionEngine | None = None,
        *,
        registry: EventRegistry = EVENT_SPECS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._engine = engine or ProjectionEngine()
        self._registry = registry
        self._clock = clock

    def process_batch(self, session: ISession, contract_id: str, events: Sequence[RawEvent]) -> BatchResult:
        """Apply consecutive events of one contract atomically."""
        result = BatchResult(contract_id=contract_id)
        with session.transaction() as uow:
            cursor = uow.checkpoints.resume_position(contract_id)
            last: Position | None = None
            for raw in events:
                if raw.contract_id != contract_id:
                    raise ValueError(f"event for {raw.contract_id} routed to worker of {contract_id}")
                result.seen += 1
                if cursor is not None and raw.position <= cursor:
                    self._handle_stale(uow, raw, cursor, result)
                    continue
                self._ingest_one(uow, raw, result)
                cursor = last = raw.position
            if last is not None:
                uow.checkpoints.advance(contract_id, last)
                result.checkpoint = last
        logger.debug(
            "batch committed [contract=%s events=%d applied=%d checkpoint=%s]",
            contract_id, result.seen, result.applied, result.checkpoint,
        )
        return result

    def replay(self, uow: IUnitOfWork, contract_id: str | None = None) -> BatchResult:
        """Re-project logged events in position order (derived tables must be empty)."""
        result = BatchResult(contract_id=contract_id)
        for logged in uow.events.iter_events(contract_id):
            result.seen += 1
            event = self._decode(logged.topic, json.loads(logged.raw_payload), logged.position, result)
            if event is not None:
                self._project(uow, logged.contract_id, logged.position, logged.topic, event, logged.ledger_closed_at, result)
        return result

    # ---------- per event ----------

    def _handle_stale(self, uow: IUnitOfWork, raw: RawEvent, cursor: Position, result: BatchResult) -> None:
        logged = uow.events.get(raw.contract_id, raw.position)
        if logged is not None and logged.same_event_as(raw):
            result.replayed += 1
            return
        reason = "differs from the logged event" if logged is not None else "was never logged"
        err = OrderingViolation(
            f"event at or behind checkpoint {cursor} {reason}; dropped",
            contract_id=raw.contract_id,
            position=raw.position,
            topic=raw.topic,
        )
        logger.warning("%s", err)
        result.ordering_violations += 1
        result.errors.append(err)

    def _ingest_one(self, uow: IUnitOfWork, raw: RawEvent, result: BatchResult) -> None:
        decode_error: str | None = None
        try:
            event = decode_event(classify(raw.topic), raw.payload, raw.position, registry=self._registry)
        except DecodeError as e:
            e.with_context(contract_id=raw.contract_id)
            logger.warning("decode failed: %s", e)
            result.decode_failures += 1
            result.errors.append(e)
            event, decode_error = None, e.reason

        status: DecodeStatus
        decoded_payload: str | None = None
        if event is None:
            status = "failed"
        elif isinstance(event, Unrecognized):
            status = "unrecognized"
            result.unrecognized += 1
        else:
            status = "decoded"
            decoded_payload = canonical_json(event.to_dict())

        uow.events.append(
            IndexedEvent(
                contract_id=raw.contract_id,
                topic=raw.topic,
                position=raw.position,
                ledger_closed_at=raw.ledger_closed_at,
                raw_payload=raw.raw_payload,
                decoded_payload=decoded_payload,
                decode_status=status,
                decode_error=decode_error,
                created_at=self._clock(),
            )
        )
        if event is not None:
            self._project(uow, raw.contract_id, raw.position, raw.topic, event, raw.ledger_closed_at, result)

    def _decode(self, topic: str, payload: Any, position: Position, result: BatchResult) -> DecodedEvent | None:
        try:
            event = decode_event(classify(topic), payload, position, registry=self._registry)
        except DecodeError:
            result.decode_failures += 1
            return None
        if isinstance(event, Unrecognized):
            result.unrecognized += 1
        return event

    def _project(
        self,
        uow: IUnitOfWork,
        contract_id: str,
        position: Position,
        topic: str,
        event: DecodedEvent,
        ledger_closed_at: datetime,
        result: BatchResult,
    ) -> None:
        try:
            result.count(self._engine.apply(uow.projections, contract_id, position, event, ledger_closed_at))
        except ProjectionError as e:
            logger.error("projection rejected event: %s", e)
            uow.projections.record_error(
                EventErrorRecord(
                    contract_id=contract_id,
                    position=position,
                    topic=topic,
                    kind=e.kind,
                    entity_key=e.entity_key,
                    message=e.message,
                )
            )
            result.entity_errors += 1
            result.errors.append(e)
