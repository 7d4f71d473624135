"""Core data models shared by decoding, projection and storage.

This module defines:
- `Position`: total order key of one event inside a contract stream.
- `RawEvent`: event as handed over by the ledger source, minimally normalized.
- `IndexedEvent`: immutable audit record appended to the event log.
- `Checkpoint`: last applied position of one contract.
- Derived-state rows (`TradeRow`, `ProposalRow`, ...) owned by the projection.

Design notes
------------
- Large on-chain integers are plain Python ints in memory; the storage layer
  persists them as exact decimal strings.
- Derived rows never carry wall-clock time: every timestamp comes from the
  event itself or from its ledger close time, so replays are byte-identical.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

_TX_HASH_RE = re.compile(r"^[0-9a-f]{64}$")

DecodeStatus = Literal["decoded", "failed", "unrecognized"]


def normalize_tx_hash(tx_hash: str) -> str:
    """Return a 32-byte hex digest as 64 lowercase chars (``0x`` stripped)."""
    h = tx_hash.lower()
    if h.startswith("0x"):
        h = h[2:]
    if not _TX_HASH_RE.match(h):
        raise ValueError(f"tx_hash must be a 32-byte hex digest, got {tx_hash!r}")
    return h


def canonical_json(payload: Any) -> str:
    """Stable JSON encoding used for raw payload storage and replay comparison."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


# === Position ===


@dataclass(slots=True, frozen=True, order=True)
class Position:
    """Total order key `(ledger, tx_hash, event_index)` (lexicographic)."""

    ledger: int
    tx_hash: str
    event_index: int

    def __post_init__(self) -> None:
        if self.ledger < 0 or self.event_index < 0:
            raise ValueError("ledger and event_index must be non-negative")
        object.__setattr__(self, "tx_hash", normalize_tx_hash(self.tx_hash))

    def __str__(self) -> str:
        return f"{self.ledger}:{self.tx_hash[:12]}:{self.event_index}"


# === Inbound record ===


@dataclass(slots=True, frozen=True)
class RawEvent:
    """Raw contract event as delivered by the ledger source."""

    contract_id: str
    topic: str
    payload: Any  # untyped JSON value, usually a dict
    position: Position
    ledger_closed_at: datetime

    @property
    def raw_payload(self) -> str:
        return canonical_json(self.payload)


# === Event log record ===


@dataclass(slots=True, frozen=True)
class IndexedEvent:
    """Immutable audit record of one observed event."""

    contract_id: str
    topic: str
    position: Position
    ledger_closed_at: datetime
    raw_payload: str
    decoded_payload: str | None
    decode_status: DecodeStatus
    decode_error: str | None
    created_at: datetime

    def same_event_as(self, raw: RawEvent) -> bool:
        """True if `raw` is a byte-identical redelivery of this record."""
        return (
            self.contract_id == raw.contract_id
            and self.position == raw.position
            and self.topic == raw.topic
            and self.raw_payload == raw.raw_payload
        )


@dataclass(slots=True, frozen=True)
class Checkpoint:
    """Last successfully applied position for one contract."""

    contract_id: str
    position: Position


# === Derived state ===


class ProposalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProposalStatus.REJECTED, ProposalStatus.EXECUTED, ProposalStatus.CANCELLED)


class GrantStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


@dataclass(slots=True, frozen=True)
class TradeRow:
    contract_id: str
    trade_id: int
    trader: str
    pair: str
    amount: int
    price: int
    is_buy: bool
    fee_amount: int
    fee_token: str
    timestamp: int
    position: Position
    ledger_closed_at: datetime


@dataclass(slots=True, frozen=True)
class ProposalRow:
    contract_id: str
    proposal_id: int
    proposer: str
    new_contract_hash: str
    target_contract: str
    description: str
    approval_threshold: int
    timelock_delay: int
    status: ProposalStatus
    current_approvals: int
    created_at: int  # on-chain timestamp of the create event
    created_position: Position
    last_position: Position
    closed_by: str | None
    closed_at: int | None
    updated_at: datetime


@dataclass(slots=True, frozen=True)
class ApprovalRow:
    contract_id: str
    proposal_id: int
    position: Position
    approver: str
    current_approvals: int
    threshold: int
    timestamp: int


@dataclass(slots=True, frozen=True)
class RewardRow:
    contract_id: str
    reward_id: int
    user: str
    amount: int
    reward_type: str
    reason: str
    granted_by: str
    granted_at: int
    position: Position
    claimed: bool
    claimed_amount: int | None
    claimed_at: int | None
    claim_position: Position | None
    ledger_closed_at: datetime


@dataclass(slots=True, frozen=True)
class GrantRow:
    contract_id: str
    grant_id: int
    beneficiary: str
    amount: int
    start_time: int
    cliff: int
    duration: int
    granted_at: int
    granted_by: str
    position: Position
    status: GrantStatus
    claimed_amount: int
    revoked_at: int | None
    revoked_by: str | None
    revoke_position: Position | None
    updated_at: datetime


@dataclass(slots=True, frozen=True)
class GrantClaimRow:
    contract_id: str
    grant_id: int
    position: Position
    beneficiary: str
    amount: int
    claimed_at: int


@dataclass(slots=True, frozen=True)
class EventErrorRecord:
    """Persisted entity-level failure (integrity or transition)."""

    contract_id: str
    position: Position
    topic: str
    kind: str
    entity_key: str
    message: str
