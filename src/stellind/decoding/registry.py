"""Topic → decoding rule dispatch table.

`EVENT_SPECS` has exactly one entry per `EventTopic`. Completeness is checked
when this module is imported, so adding a topic without a rule fails fast
instead of silently decoding as unknown.
"""

from __future__ import annotations

from stellind.decoding import events as ev
from stellind.decoding.specs import EventRegistry, EventSpec, FieldSpec
from stellind.decoding.topics import EventTopic

T = EventTopic


def _spec(topic: EventTopic, event_type: type[ev.KnownEvent], *fields: FieldSpec) -> EventSpec:
    return EventSpec(topic=topic, event_type=event_type, fields=tuple(fields))


EVENT_SPECS: EventRegistry = {
    T.TRADE_EXECUTED: _spec(
        T.TRADE_EXECUTED,
        ev.TradeExecuted,
        FieldSpec("trade_id", "u64"),
        FieldSpec("trader", "address"),
        FieldSpec("pair", "string"),
        FieldSpec("amount", "i128"),
        FieldSpec("price", "i128"),
        FieldSpec("is_buy", "bool"),
        FieldSpec("fee_amount", "i128"),
        FieldSpec("fee_token", "address"),
        FieldSpec("timestamp", "u64"),
    ),
    T.CONTRACT_PAUSED: _spec(
        T.CONTRACT_PAUSED,
        ev.ContractPaused,
        FieldSpec("paused_by", "address"),
        FieldSpec("timestamp", "u64"),
    ),
    T.CONTRACT_UNPAUSED: _spec(
        T.CONTRACT_UNPAUSED,
        ev.ContractUnpaused,
        FieldSpec("unpaused_by", "address"),
        FieldSpec("timestamp", "u64"),
    ),
    T.FEE_COLLECTED: _spec(
        T.FEE_COLLECTED,
        ev.FeeCollected,
        FieldSpec("payer", "address"),
        FieldSpec("recipient", "address"),
        FieldSpec("amount", "i128"),
        FieldSpec("token", "address"),
        FieldSpec("timestamp", "u64"),
    ),
    T.PROPOSAL_CREATED: _spec(
        T.PROPOSAL_CREATED,
        ev.ProposalCreated,
        FieldSpec("proposal_id", "u64"),
        FieldSpec("proposer", "address"),
        FieldSpec("new_contract_hash", "hash"),
        FieldSpec("target_contract", "address"),
        FieldSpec("description", "string"),
        FieldSpec("approval_threshold", "u32"),
        FieldSpec("timelock_delay", "u64"),
        FieldSpec("timestamp", "u64"),
    ),
    T.PROPOSAL_APPROVED: _spec(
        T.PROPOSAL_APPROVED,
        ev.ProposalApproved,
        FieldSpec("proposal_id", "u64"),
        FieldSpec("approver", "address"),
        FieldSpec("current_approvals", "u32"),
        FieldSpec("threshold", "u32"),
        FieldSpec("timestamp", "u64"),
    ),
    T.PROPOSAL_REJECTED: _spec(
        T.PROPOSAL_REJECTED,
        ev.ProposalRejected,
        FieldSpec("proposal_id", "u64"),
        FieldSpec("rejector", "address"),
        FieldSpec("timestamp", "u64"),
    ),
    T.PROPOSAL_EXECUTED: _spec(
        T.PROPOSAL_EXECUTED,
        ev.ProposalExecuted,
        FieldSpec("proposal_id", "u64"),
        FieldSpec("executor", "address"),
        FieldSpec("new_contract_hash", "hash"),
        FieldSpec("timestamp", "u64"),
    ),
    T.PROPOSAL_CANCELLED: _spec(
        T.PROPOSAL_CANCELLED,
        ev.ProposalCancelled,
        FieldSpec("proposal_id", "u64"),
        FieldSpec("cancelled_by", "address"),
        FieldSpec("timestamp", "u64"),
    ),
    T.REWARD_ADDED: _spec(
        T.REWARD_ADDED,
        ev.RewardAdded,
        FieldSpec("reward_id", "u64"),
        FieldSpec("user", "address"),
        FieldSpec("amount", "i128"),
        FieldSpec("reward_type", "string"),
        FieldSpec("reason", "string"),
        FieldSpec("granted_by", "address"),
        FieldSpec("timestamp", "u64"),
    ),
    T.REWARD_CLAIMED: _spec(
        T.REWARD_CLAIMED,
        ev.RewardClaimed,
        FieldSpec("reward_id", "u64"),
        FieldSpec("user", "address"),
        FieldSpec("amount", "i128"),
        FieldSpec("timestamp", "u64"),
    ),
    T.TRANSFER: _spec(
        T.TRANSFER,
        ev.TokenTransfer,
        FieldSpec("from", "address", attr="sender"),
        FieldSpec("to", "address", attr="recipient"),
        FieldSpec("amount", "i128"),
    ),
    T.MINT: _spec(
        T.MINT,
        ev.TokenMinted,
        FieldSpec("to", "address", attr="recipient"),
        FieldSpec("amount", "i128"),
    ),
    T.BURN: _spec(
        T.BURN,
        ev.TokenBurned,
        FieldSpec("from", "address", attr="sender"),
        FieldSpec("amount", "i128"),
    ),
    T.GRANT: _spec(
        T.GRANT,
        ev.VestingGranted,
        FieldSpec("grant_id", "u64"),
        FieldSpec("beneficiary", "address"),
        FieldSpec("amount", "i128"),
        FieldSpec("start_time", "u64"),
        FieldSpec("cliff", "u64"),
        FieldSpec("duration", "u64"),
        FieldSpec("granted_at", "u64"),
        FieldSpec("granted_by", "address"),
    ),
    T.CLAIM: _spec(
        T.CLAIM,
        ev.VestingClaimed,
        FieldSpec("grant_id", "u64"),
        FieldSpec("beneficiary", "address"),
        FieldSpec("amount", "i128"),
        FieldSpec("claimed_at", "u64"),
    ),
    T.REVOKE: _spec(
        T.REVOKE,
        ev.VestingRevoked,
        FieldSpec("grant_id", "u64"),
        FieldSpec("beneficiary", "address"),
        FieldSpec("revoked_at", "u64"),
        FieldSpec("revoked_by", "address"),
    ),
}


def check_registry(registry: EventRegistry) -> None:
    """Raise if the registry does not cover every topic exactly once."""
    missing = [t.name for t in EventTopic if t not in registry]
    if missing:
        raise RuntimeError(f"event registry has no rule for: {', '.join(missing)}")
    for topic, spec in registry.items():
        if spec.topic is not topic:
            raise RuntimeError(f"registry entry {topic.name} holds the rule for {spec.topic.name}")


check_registry(EVENT_SPECS)
