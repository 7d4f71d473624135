"""Typed contract events.

One frozen dataclass per known topic, mirroring the on-chain event structs,
plus `Unrecognized` for topics outside the known set. `DecodedEvent` is the
closed union the projection engine matches on.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, ClassVar

from stellind.decoding.topics import EventTopic


@dataclass(slots=True, frozen=True)
class _Event:
    topic: ClassVar[EventTopic]

    def to_dict(self) -> dict[str, Any]:
        """Plain mapping; big ints are rendered as decimal strings."""
        return {k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v for k, v in asdict(self).items()}


# ---- trading ----


@dataclass(slots=True, frozen=True)
class TradeExecuted(_Event):
    topic: ClassVar[EventTopic] = EventTopic.TRADE_EXECUTED

    trade_id: int
    trader: str
    pair: str
    amount: int
    price: int
    is_buy: bool
    fee_amount: int
    fee_token: str
    timestamp: int


@dataclass(slots=True, frozen=True)
class ContractPaused(_Event):
    topic: ClassVar[EventTopic] = EventTopic.CONTRACT_PAUSED

    paused_by: str
    timestamp: int


@dataclass(slots=True, frozen=True)
class ContractUnpaused(_Event):
    topic: ClassVar[EventTopic] = EventTopic.CONTRACT_UNPAUSED

    unpaused_by: str
    timestamp: int


@dataclass(slots=True, frozen=True)
class FeeCollected(_Event):
    topic: ClassVar[EventTopic] = EventTopic.FEE_COLLECTED

    payer: str
    recipient: str
    amount: int
    token: str
    timestamp: int


# ---- governance ----


@dataclass(slots=True, frozen=True)
class ProposalCreated(_Event):
    topic: ClassVar[EventTopic] = EventTopic.PROPOSAL_CREATED

    proposal_id: int
    proposer: str
    new_contract_hash: str
    target_contract: str
    description: str
    approval_threshold: int
    timelock_delay: int
    timestamp: int


@dataclass(slots=True, frozen=True)
class ProposalApproved(_Event):
    topic: ClassVar[EventTopic] = EventTopic.PROPOSAL_APPROVED

    proposal_id: int
    approver: str
    current_approvals: int
    threshold: int
    timestamp: int


@dataclass(slots=True, frozen=True)
class ProposalRejected(_Event):
    topic: ClassVar[EventTopic] = EventTopic.PROPOSAL_REJECTED

    proposal_id: int
    rejector: str
    timestamp: int


@dataclass(slots=True, frozen=True)
class ProposalExecuted(_Event):
    topic: ClassVar[EventTopic] = EventTopic.PROPOSAL_EXECUTED

    proposal_id: int
    executor: str
    new_contract_hash: str
    timestamp: int


@dataclass(slots=True, frozen=True)
class ProposalCancelled(_Event):
    topic: ClassVar[EventTopic] = EventTopic.PROPOSAL_CANCELLED

    proposal_id: int
    cancelled_by: str
    timestamp: int


# ---- social rewards ----


@dataclass(slots=True, frozen=True)
class RewardAdded(_Event):
    topic: ClassVar[EventTopic] = EventTopic.REWARD_ADDED

    reward_id: int
    user: str
    amount: int
    reward_type: str
    reason: str
    granted_by: str
    timestamp: int


@dataclass(slots=True, frozen=True)
class RewardClaimed(_Event):
    topic: ClassVar[EventTopic] = EventTopic.REWARD_CLAIMED

    reward_id: int
    user: str
    amount: int
    timestamp: int


# ---- token ----


@dataclass(slots=True, frozen=True)
class TokenTransfer(_Event):
    topic: ClassVar[EventTopic] = EventTopic.TRANSFER

    sender: str
    recipient: str
    amount: int


@dataclass(slots=True, frozen=True)
class TokenMinted(_Event):
    topic: ClassVar[EventTopic] = EventTopic.MINT

    recipient: str
    amount: int


@dataclass(slots=True, frozen=True)
class TokenBurned(_Event):
    topic: ClassVar[EventTopic] = EventTopic.BURN

    sender: str
    amount: int


# ---- vesting ----


@dataclass(slots=True, frozen=True)
class VestingGranted(_Event):
    topic: ClassVar[EventTopic] = EventTopic.GRANT

    grant_id: int
    beneficiary: str
    amount: int
    start_time: int
    cliff: int
    duration: int
    granted_at: int
    granted_by: str


@dataclass(slots=True, frozen=True)
class VestingClaimed(_Event):
    topic: ClassVar[EventTopic] = EventTopic.CLAIM

    grant_id: int
    beneficiary: str
    amount: int
    claimed_at: int


@dataclass(slots=True, frozen=True)
class VestingRevoked(_Event):
    topic: ClassVar[EventTopic] = EventTopic.REVOKE

    grant_id: int
    beneficiary: str
    revoked_at: int
    revoked_by: str


# ---- catch-all ----


@dataclass(slots=True, frozen=True)
class Unrecognized:
    """Event with a topic outside `EventTopic`; keeps the raw payload bytes."""

    topic_symbol: str
    raw_payload: bytes


KnownEvent = (
    TradeExecuted
    | ContractPaused
    | ContractUnpaused
    | FeeCollected
    | ProposalCreated
    | ProposalApproved
    | ProposalRejected
    | ProposalExecuted
    | ProposalCancelled
    | RewardAdded
    | RewardClaimed
    | TokenTransfer
    | TokenMinted
    | TokenBurned
    | VestingGranted
    | VestingClaimed
    | VestingRevoked
)

DecodedEvent = KnownEvent | Unrecognized
