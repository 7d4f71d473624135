"""Event topic classification.

Topics are the on-chain symbols emitted by the Stellara contracts. Any other
string classifies as `UnknownTopic`; classification never fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EventTopic(str, Enum):
    # Trading
    TRADE_EXECUTED = "trade"
    CONTRACT_PAUSED = "paused"
    CONTRACT_UNPAUSED = "unpause"
    FEE_COLLECTED = "fee"
    # Governance
    PROPOSAL_CREATED = "propose"
    PROPOSAL_APPROVED = "approve"
    PROPOSAL_REJECTED = "reject"
    PROPOSAL_EXECUTED = "execute"
    PROPOSAL_CANCELLED = "cancel"
    # Social rewards
    REWARD_ADDED = "reward"
    REWARD_CLAIMED = "claimed"
    # Token
    TRANSFER = "transfer"
    MINT = "mint"
    BURN = "burn"
    # Vesting
    GRANT = "grant"
    CLAIM = "claim"
    REVOKE = "revoke"


@dataclass(slots=True, frozen=True)
class UnknownTopic:
    """Topic symbol not emitted by any known contract."""

    value: str


ClassifiedTopic = EventTopic | UnknownTopic

_BY_SYMBOL: dict[str, EventTopic] = {t.value: t for t in EventTopic}


def classify(topic: str) -> ClassifiedTopic:
    """Map a raw topic symbol to its `EventTopic` (exact match)."""
    known = _BY_SYMBOL.get(topic)
    return known if known is not None else UnknownTopic(topic)


def topic_symbol(topic: ClassifiedTopic) -> str:
    """Inverse of `classify`."""
    return topic.value
