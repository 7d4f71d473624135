"""Projection engine: decoded events → derived relational state.

Each handler reads the current entity row, validates the transition and then
performs its writes. Nothing is written before validation passes, so an event
rejected with `IntegrityError` or `InvalidTransition` leaves no partial
effect.

Idempotence rules
-----------------
- Create events (trade, proposal, reward, grant): an existing row with the
  same content and position is a replay → NOOP; anything else conflicts.
- Per-position facts (approvals, vesting claims) are stored keyed by
  position, so their replays are detected even after later events.
- Terminal transitions (proposal close, reward claim, grant revoke) compare
  against the stored terminal data.

Reaching an approval threshold never changes proposal status: execution is
a distinct on-chain action that arrives as its own event.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import assert_never

from stellind.core.errors import IntegrityError, InvalidTransition, MissingEntityError
from stellind.core.interfaces import IProjectionRepository
from stellind.core.models import (
    ApprovalRow,
    GrantClaimRow,
    GrantRow,
    GrantStatus,
    Position,
    ProposalRow,
    ProposalStatus,
    RewardRow,
    TradeRow,
)
from stellind.decoding.events import (
    ContractPaused,
    ContractUnpaused,
    DecodedEvent,
    FeeCollected,
    ProposalApproved,
    ProposalCancelled,
    ProposalCreated,
    ProposalExecuted,
    ProposalRejected,
    RewardAdded,
    RewardClaimed,
    TokenBurned,
    TokenMinted,
    TokenTransfer,
    TradeExecuted,
    Unrecognized,
    VestingClaimed,
    VestingGranted,
    VestingRevoked,
)

logger = logging.getLogger(__name__)

OPEN_PROPOSAL_STATES = frozenset({ProposalStatus.PENDING, ProposalStatus.APPROVED})


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"  # identical replay, state unchanged
    SKIPPED = "skipped"  # topic has no derived table


def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


class _Ctx:
    """Event context threaded through handlers (for error reporting)."""

    __slots__ = ("repo", "contract_id", "position", "closed_at", "topic")

    def __init__(self, repo: IProjectionRepository, contract_id: str, position: Position, closed_at: datetime, topic: str):
        self.repo = repo
        self.contract_id = contract_id
        self.position = position
        self.closed_at = closed_at
        self.topic = topic

    def integrity(self, entity_key: str, message: str) -> IntegrityError:
        return IntegrityError(
            message, entity_key=entity_key, contract_id=self.contract_id, position=self.position, topic=self.topic
        )

    def transition(self, entity_key: str, message: str) -> InvalidTransition:
        return InvalidTransition(
            message, entity_key=entity_key, contract_id=self.contract_id, position=self.position, topic=self.topic
        )

    def missing(self, entity_key: str) -> MissingEntityError:
        return MissingEntityError(
            f"{entity_key} does not exist",
            entity_key=entity_key,
            contract_id=self.contract_id,
            position=self.position,
            topic=self.topic,
        )

    def require_after(self, entity_key: str, last: Position) -> None:
        if self.position <= last:
            raise self.transition(entity_key, f"{entity_key} already advanced to {last}")


class ProjectionEngine:
    """Applies one decoded event to derived state, exactly once."""

    def apply(
        self,
        repo: IProjectionRepository,
        contract_id: str,
        position: Position,
        event: DecodedEvent,
        ledger_closed_at: datetime,
    ) -> ApplyOutcome:
        topic = event.topic_symbol if isinstance(event, Unrecognized) else event.topic.value
        ctx = _Ctx(repo, contract_id, position, _utc(ledger_closed_at), topic)
        match event:
            case TradeExecuted():
                return self._trade(ctx, event)
            case ProposalCreated():
                return self._proposal_created(ctx, event)
            case ProposalApproved():
                return self._proposal_approved(ctx, event)
            case ProposalRejected():
                return self._proposal_closed(ctx, event.proposal_id, ProposalStatus.REJECTED, event.rejector, event.timestamp)
            case ProposalExecuted():
                return self._proposal_closed(ctx, event.proposal_id, ProposalStatus.EXECUTED, event.executor, event.timestamp)
            case ProposalCancelled():
                return self._proposal_closed(ctx, event.proposal_id, ProposalStatus.CANCELLED, event.cancelled_by, event.timestamp)
            case RewardAdded():
                return self._reward_added(ctx, event)
            case RewardClaimed():
                return self._reward_claimed(ctx, event)
            case VestingGranted():
                return self._grant(ctx, event)
            case VestingClaimed():
                return self._grant_claim(ctx, event)
            case VestingRevoked():
                return self._grant_revoke(ctx, event)
            case ContractPaused() | ContractUnpaused() | FeeCollected() | TokenTransfer() | TokenMinted() | TokenBurned() | Unrecognized():
                return ApplyOutcome.SKIPPED
            case _:
                assert_never(event)

    # ---------- trades ----------

    def _trade(self, ctx: _Ctx, ev: TradeExecuted) -> ApplyOutcome:
        key = f"trade:{ev.trade_id}"
        row = TradeRow(
            contract_id=ctx.contract_id,
            trade_id=ev.trade_id,
            trader=ev.trader,
            pair=ev.pair,
            amount=ev.amount,
            price=ev.price,
            is_buy=ev.is_buy,
            fee_amount=ev.fee_amount,
            fee_token=ev.fee_token,
            timestamp=ev.timestamp,
            position=ctx.position,
            ledger_closed_at=ctx.closed_at,
        )
        existing = ctx.repo.get_trade(ctx.contract_id, ev.trade_id)
        if existing is None:
            ctx.repo.insert_trade(row)
            return ApplyOutcome.APPLIED
        if existing == row:
            return ApplyOutcome.NOOP
        if existing.position != ctx.position:
            raise ctx.integrity(key, f"{key} already recorded at {existing.position}")
        raise ctx.integrity(key, f"{key} redelivered with different content")

    # ---------- proposals ----------

    @staticmethod
    def _proposal_identity(p: ProposalRow) -> tuple:
        return (
            p.proposer,
            p.new_contract_hash,
            p.target_contract,
            p.description,
            p.approval_threshold,
            p.timelock_delay,
            p.created_at,
            p.created_position,
        )

    def _proposal_created(self, ctx: _Ctx, ev: ProposalCreated) -> ApplyOutcome:
        key = f"proposal:{ev.proposal_id}"
        row = ProposalRow(
            contract_id=ctx.contract_id,
            proposal_id=ev.proposal_id,
            proposer=ev.proposer,
            new_contract_hash=ev.new_contract_hash,
            target_contract=ev.target_contract,
            description=ev.description,
            approval_threshold=ev.approval_threshold,
            timelock_delay=ev.timelock_delay,
            status=ProposalStatus.PENDING,
            current_approvals=0,
            created_at=ev.timestamp,
            created_position=ctx.position,
            last_position=ctx.position,
            closed_by=None,
            closed_at=None,
            updated_at=ctx.closed_at,
        )
        existing = ctx.repo.get_proposal(ctx.contract_id, ev.proposal_id)
        if existing is None:
            ctx.repo.insert_proposal(row)
            return ApplyOutcome.APPLIED
        if self._proposal_identity(existing) == self._proposal_identity(row):
            return ApplyOutcome.NOOP
        if existing.created_position != ctx.position:
            raise ctx.integrity(key, f"{key} already created at {existing.created_position}")
        raise ctx.integrity(key, f"{key} redelivered with different content")

    def _proposal_approved(self, ctx: _Ctx, ev: ProposalApproved) -> ApplyOutcome:
        key = f"proposal:{ev.proposal_id}"
        approval = ApprovalRow(
            contract_id=ctx.contract_id,
            proposal_id=ev.proposal_id,
            position=ctx.position,
            approver=ev.approver,
            current_approvals=ev.current_approvals,
            threshold=ev.threshold,
            timestamp=ev.timestamp,
        )
        seen = ctx.repo.get_approval(ctx.contract_id, ev.proposal_id, ctx.position)
        if seen is not None:
            if seen == approval:
                return ApplyOutcome.NOOP
            raise ctx.integrity(key, f"approval at {ctx.position} redelivered with different content")

        proposal = ctx.repo.get_proposal(ctx.contract_id, ev.proposal_id)
        if proposal is None:
            raise ctx.missing(key)
        if proposal.status not in OPEN_PROPOSAL_STATES:
            raise ctx.transition(key, f"{key} is {proposal.status.value}; cannot approve")
        ctx.require_after(key, proposal.last_position)

        updated = replace(
            proposal,
            current_approvals=proposal.current_approvals + 1,
            last_position=ctx.position,
            updated_at=ctx.closed_at,
        )
        if ev.current_approvals != updated.current_approvals:
            logger.warning(
                "%s approval count mismatch: event says %d, indexed %d [contract=%s position=%s]",
                key, ev.current_approvals, updated.current_approvals, ctx.contract_id, ctx.position,
            )
        ctx.repo.insert_approval(approval)
        ctx.repo.update_proposal(updated)
        return ApplyOutcome.APPLIED

    def _proposal_closed(
        self,
        ctx: _Ctx,
        proposal_id: int,
        target: ProposalStatus,
        actor: str,
        timestamp: int,
    ) -> ApplyOutcome:
        key = f"proposal:{proposal_id}"
        proposal = ctx.repo.get_proposal(ctx.contract_id, proposal_id)
        if proposal is None:
            raise ctx.missing(key)
        if proposal.status.is_terminal:
            if (
                proposal.status is target
                and proposal.last_position == ctx.position
                and proposal.closed_by == actor
                and proposal.closed_at == timestamp
            ):
                return ApplyOutcome.NOOP
            raise ctx.transition(key, f"{key} is already {proposal.status.value}; cannot move to {target.value}")
        ctx.require_after(key, proposal.last_position)

        ctx.repo.update_proposal(
            replace(
                proposal,
                status=target,
                last_position=ctx.position,
                closed_by=actor,
                closed_at=timestamp,
                updated_at=ctx.closed_at,
            )
        )
        return ApplyOutcome.APPLIED

    # ---------- rewards ----------

    @staticmethod
    def _reward_identity(r: RewardRow) -> tuple:
        return (r.user, r.amount, r.reward_type, r.reason, r.granted_by, r.granted_at, r.position)

    def _reward_added(self, ctx: _Ctx, ev: RewardAdded) -> ApplyOutcome:
        key = f"reward:{ev.reward_id}"
        row = RewardRow(
            contract_id=ctx.contract_id,
            reward_id=ev.reward_id,
            user=ev.user,
            amount=ev.amount,
            reward_type=ev.reward_type,
            reason=ev.reason,
            granted_by=ev.granted_by,
            granted_at=ev.timestamp,
            position=ctx.position,
            claimed=False,
            claimed_amount=None,
            claimed_at=None,
            claim_position=None,
            ledger_closed_at=ctx.closed_at,
        )
        existing = ctx.repo.get_reward(ctx.contract_id, ev.reward_id)
        if existing is None:
            ctx.repo.insert_reward(row)
            return ApplyOutcome.APPLIED
        if self._reward_identity(existing) == self._reward_identity(row):
            return ApplyOutcome.NOOP
        if existing.position != ctx.position:
            raise ctx.integrity(key, f"{key} already added at {existing.position}")
        raise ctx.integrity(key, f"{key} redelivered with different content")

    def _reward_claimed(self, ctx: _Ctx, ev: RewardClaimed) -> ApplyOutcome:
        key = f"reward:{ev.reward_id}"
        reward = ctx.repo.get_reward(ctx.contract_id, ev.reward_id)
        if reward is None:
            raise ctx.missing(key)
        if reward.claimed:
            if reward.claimed_amount == ev.amount and reward.claimed_at == ev.timestamp:
                return ApplyOutcome.NOOP
            raise ctx.integrity(
                key,
                f"{key} already claimed (amount={reward.claimed_amount}, at={reward.claimed_at}); "
                f"got amount={ev.amount}, at={ev.timestamp}",
            )
        if ev.user != reward.user:
            raise ctx.integrity(key, f"{key} belongs to {reward.user}, claimed by {ev.user}")
        ctx.require_after(key, reward.position)

        ctx.repo.update_reward_claim(
            replace(
                reward,
                claimed=True,
                claimed_amount=ev.amount,
                claimed_at=ev.timestamp,
                claim_position=ctx.position,
                ledger_closed_at=ctx.closed_at,
            )
        )
        return ApplyOutcome.APPLIED

    # ---------- vesting grants ----------

    @staticmethod
    def _grant_identity(g: GrantRow) -> tuple:
        return (
            g.beneficiary,
            g.amount,
            g.start_time,
            g.cliff,
            g.duration,
            g.granted_at,
            g.granted_by,
            g.position,
        )

    def _grant(self, ctx: _Ctx, ev: VestingGranted) -> ApplyOutcome:
        key = f"grant:{ev.grant_id}"
        row = GrantRow(
            contract_id=ctx.contract_id,
            grant_id=ev.grant_id,
            beneficiary=ev.beneficiary,
            amount=ev.amount,
            start_time=ev.start_time,
            cliff=ev.cliff,
            duration=ev.duration,
            granted_at=ev.granted_at,
            granted_by=ev.granted_by,
            position=ctx.position,
            status=GrantStatus.ACTIVE,
            claimed_amount=0,
            revoked_at=None,
            revoked_by=None,
            revoke_position=None,
            updated_at=ctx.closed_at,
        )
        existing = ctx.repo.get_grant(ctx.contract_id, ev.grant_id)
        if existing is None:
            ctx.repo.insert_grant(row)
            return ApplyOutcome.APPLIED
        if self._grant_identity(existing) == self._grant_identity(row):
            return ApplyOutcome.NOOP
        if existing.position != ctx.position:
            raise ctx.integrity(key, f"{key} already granted at {existing.position}")
        raise ctx.integrity(key, f"{key} redelivered with different content")

    def _grant_claim(self, ctx: _Ctx, ev: VestingClaimed) -> ApplyOutcome:
        key = f"grant:{ev.grant_id}"
        claim = GrantClaimRow(
            contract_id=ctx.contract_id,
            grant_id=ev.grant_id,
            position=ctx.position,
            beneficiary=ev.beneficiary,
            amount=ev.amount,
            claimed_at=ev.claimed_at,
        )
        seen = ctx.repo.get_grant_claim(ctx.contract_id, ev.grant_id, ctx.position)
        if seen is not None:
            if seen == claim:
                return ApplyOutcome.NOOP
            raise ctx.integrity(key, f"claim at {ctx.position} redelivered with different content")

        grant = ctx.repo.get_grant(ctx.contract_id, ev.grant_id)
        if grant is None:
            raise ctx.missing(key)
        if grant.status is GrantStatus.REVOKED:
            raise ctx.transition(key, f"{key} was revoked at {grant.revoke_position}; cannot claim")
        ctx.require_after(key, grant.position)
        if ev.beneficiary != grant.beneficiary:
            raise ctx.integrity(key, f"{key} belongs to {grant.beneficiary}, claimed by {ev.beneficiary}")
        if ev.amount <= 0:
            raise ctx.integrity(key, f"claim amount must be positive, got {ev.amount}")
        total = grant.claimed_amount + ev.amount
        if total > grant.amount:
            raise ctx.integrity(key, f"claims total {total} exceed granted amount {grant.amount}")

        ctx.repo.insert_grant_claim(claim)
        ctx.repo.update_grant(replace(grant, claimed_amount=total, updated_at=ctx.closed_at))
        return ApplyOutcome.APPLIED

    def _grant_revoke(self, ctx: _Ctx, ev: VestingRevoked) -> ApplyOutcome:
        key = f"grant:{ev.grant_id}"
        grant = ctx.repo.get_grant(ctx.contract_id, ev.grant_id)
        if grant is None:
            raise ctx.missing(key)
        if grant.status is GrantStatus.REVOKED:
            if (
                grant.revoke_position == ctx.position
                and grant.revoked_at == ev.revoked_at
                and grant.revoked_by == ev.revoked_by
            ):
                return ApplyOutcome.NOOP
            raise ctx.transition(key, f"{key} was already revoked at {grant.revoke_position}")
        ctx.require_after(key, grant.position)
        if ev.beneficiary != grant.beneficiary:
            raise ctx.integrity(key, f"{key} belongs to {grant.beneficiary}, revoke names {ev.beneficiary}")

        ctx.repo.update_grant(
            replace(
                grant,
                status=GrantStatus.REVOKED,
                revoked_at=ev.revoked_at,
                revoked_by=ev.revoked_by,
                revoke_position=ctx.position,
                updated_at=ctx.closed_at,
            )
        )
        return ApplyOutcome.APPLIED
