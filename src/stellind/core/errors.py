"""Error taxonomy of the indexing pipeline.

- `DecodeError`: payload does not match its topic's shape. Recorded, pipeline continues.
- `ProjectionError`: entity-level failure, never retried.
    - `IntegrityError`: conflicting data for an existing key.
    - `InvalidTransition`: entity state forbids the event.
        - `MissingEntityError`: the targeted entity does not exist.
- `OrderingViolation`: position at or behind the checkpoint and not a replay.
- `TransientStorageError`: retriable storage failure; the batch stays un-checkpointed.

Every error carries enough context (contract, position, topic) to locate the
offending event in the indexed-event log.
"""

from __future__ import annotations

from typing import Any

from stellind.core.models import Position


class IndexerError(Exception):
    """Base class; carries the event context of the failure."""

    retriable = False

    def __init__(
        self,
        message: str,
        *,
        contract_id: str | None = None,
        position: Position | None = None,
        topic: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.contract_id = contract_id
        self.position = position
        self.topic = topic

    def with_context(
        self,
        *,
        contract_id: str | None = None,
        position: Position | None = None,
        topic: str | None = None,
    ) -> IndexerError:
        """Fill in missing context fields and return self (for re-raise)."""
        self.contract_id = self.contract_id or contract_id
        self.position = self.position or position
        self.topic = self.topic or topic
        return self

    def __str__(self) -> str:
        ctx = [
            f"{k}={v}"
            for k, v in (("contract", self.contract_id), ("position", self.position), ("topic", self.topic))
            if v is not None
        ]
        return f"{self.message} [{' '.join(ctx)}]" if ctx else self.message


class DecodeError(IndexerError):
    """Payload cannot be decoded into the typed event of its topic."""

    def __init__(self, reason: str, raw_payload: Any = None, **ctx: Any) -> None:
        super().__init__(reason, **ctx)
        self.reason = reason
        self.raw_payload = raw_payload


class ProjectionError(IndexerError):
    """Entity-level failure raised by the projection engine."""

    kind = "projection"

    def __init__(self, message: str, *, entity_key: str, **ctx: Any) -> None:
        super().__init__(message, **ctx)
        self.entity_key = entity_key


class IntegrityError(ProjectionError):
    kind = "integrity"


class InvalidTransition(ProjectionError):
    kind = "invalid_transition"


class MissingEntityError(InvalidTransition):
    kind = "missing_entity"


class OrderingViolation(IndexerError):
    """Event is not strictly after the contract checkpoint."""


class TransientStorageError(IndexerError):
    """Storage failure that may succeed on retry."""

    retriable = True
