from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable

from stellind.core.models import (
    ApprovalRow,
    Checkpoint,
    EventErrorRecord,
    GrantClaimRow,
    GrantRow,
    IndexedEvent,
    Position,
    ProposalRow,
    RawEvent,
    RewardRow,
    TradeRow,
)


# ---------------------------------------------------------------------------
# IRawEventSource
# ---------------------------------------------------------------------------

@runtime_checkable
class IRawEventSource(Protocol):
    """
    Abstract provider of raw contract events (the ledger/RPC collaborator).

    Domain expectations:
    - One ordered stream per contract.
    - Delivery is at-least-once: events may repeat or arrive out of order
      after a reorg; the pipeline detects both.
    - Streams are pulled, so a slow consumer throttles fetching.
    """

    async def contracts(self) -> list[str]:
        """Return the contract ids this source can stream."""
        ...

    def stream(self, contract_id: str, after: Position | None) -> AsyncIterator[RawEvent]:
        """
        Yield events for `contract_id`.

        `after` is the contract's checkpoint; sources should resume strictly
        after it when they can.
        """
        ...


# ---------------------------------------------------------------------------
# Repositories bound to one transaction
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventLogRepository(Protocol):
    """Append-only log keyed by (contract_id, position)."""

    def append(self, event: IndexedEvent) -> None: ...

    def get(self, contract_id: str, position: Position) -> IndexedEvent | None: ...

    def iter_events(self, contract_id: str | None = None) -> Iterator[IndexedEvent]: ...


@runtime_checkable
class ICheckpointRepository(Protocol):
    def resume_position(self, contract_id: str) -> Position | None: ...

    def advance(self, contract_id: str, position: Position) -> None: ...

    def all(self) -> list[Checkpoint]: ...


@runtime_checkable
class IProjectionRepository(Protocol):
    """
    Row-level access to derived state.

    Implementations do no validation; the projection engine decides what may
    be written.
    """

    def get_trade(self, contract_id: str, trade_id: int) -> TradeRow | None: ...
    def insert_trade(self, t: TradeRow) -> None: ...

    def get_proposal(self, contract_id: str, proposal_id: int) -> ProposalRow | None: ...
    def insert_proposal(self, p: ProposalRow) -> None: ...
    def update_proposal(self, p: ProposalRow) -> None: ...
    def get_approval(self, contract_id: str, proposal_id: int, position: Position) -> ApprovalRow | None: ...
    def insert_approval(self, a: ApprovalRow) -> None: ...

    def get_reward(self, contract_id: str, reward_id: int) -> RewardRow | None: ...
    def insert_reward(self, r: RewardRow) -> None: ...
    def update_reward_claim(self, r: RewardRow) -> None: ...

    def get_grant(self, contract_id: str, grant_id: int) -> GrantRow | None: ...
    def insert_grant(self, g: GrantRow) -> None: ...
    def update_grant(self, g: GrantRow) -> None: ...
    def get_grant_claim(self, contract_id: str, grant_id: int, position: Position) -> GrantClaimRow | None: ...
    def insert_grant_claim(self, c: GrantClaimRow) -> None: ...

    def record_error(self, e: EventErrorRecord) -> None: ...
    def clear(self) -> None: ...


class IUnitOfWork(Protocol):
    events: IEventLogRepository
    checkpoints: ICheckpointRepository
    projections: IProjectionRepository


class ISession(Protocol):
    """One storage session (cursor) used by a single worker at a time."""

    def transaction(self) -> AbstractContextManager[IUnitOfWork]: ...

    def close(self) -> None: ...


@runtime_checkable
class IIndexerStore(Protocol):
    def session(self) -> ISession: ...
