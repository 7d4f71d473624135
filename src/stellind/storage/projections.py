"""DuckDB repository for derived-state tables.

Plain row mapping only: every rule about *when* a row may be written lives in
the projection engine. Callers run inside a transaction on the same cursor.
"""

from __future__ import annotations

import duckdb

from stellind.core.models import (
    ApprovalRow,
    EventErrorRecord,
    GrantClaimRow,
    GrantRow,
    GrantStatus,
    Position,
    ProposalRow,
    ProposalStatus,
    RewardRow,
    TradeRow,
)
from stellind.storage import sql_queries as q
from stellind.storage.utils import int_from_db, int_to_db, pos_from_db, pos_params, ts_from_db, ts_to_db


class DuckDBProjectionRepository:
    def __init__(self, cursor: duckdb.DuckDBPyConnection) -> None:
        self._cur = cursor

    def _one(self, sql: str, params: list) -> tuple | None:
        return self._cur.execute(sql, params).fetchone()

    # ---------- trades ----------

    def get_trade(self, contract_id: str, trade_id: int) -> TradeRow | None:
        row = self._one(q.SELECT_TRADE, [contract_id, int_to_db(trade_id)])
        if row is None:
            return None
        (cid, tid, trader, pair, amount, price, is_buy, fee_amount, fee_token,
         ts, ledger, tx_hash, idx, closed_at) = row
        return TradeRow(
            contract_id=cid,
            trade_id=int(tid),
            trader=trader,
            pair=pair,
            amount=int(amount),
            price=int(price),
            is_buy=bool(is_buy),
            fee_amount=int(fee_amount),
            fee_token=fee_token,
            timestamp=int(ts),
            position=Position(int(ledger), tx_hash, int(idx)),
            ledger_closed_at=ts_from_db(closed_at),
        )

    def insert_trade(self, t: TradeRow) -> None:
        self._cur.execute(
            q.INSERT_TRADE,
            [
                t.contract_id, int_to_db(t.trade_id), t.trader, t.pair,
                int_to_db(t.amount), int_to_db(t.price), t.is_buy,
                int_to_db(t.fee_amount), t.fee_token, int_to_db(t.timestamp),
                *pos_params(t.position), ts_to_db(t.ledger_closed_at),
            ],
        )

    # ---------- proposals ----------

    def get_proposal(self, contract_id: str, proposal_id: int) -> ProposalRow | None:
        row = self._one(q.SELECT_PROPOSAL, [contract_id, int_to_db(proposal_id)])
        if row is None:
            return None
        (cid, pid, proposer, new_hash, target, description, threshold, timelock, status,
         approvals, created_at, c_ledger, c_tx, c_idx, l_ledger, l_tx, l_idx,
         closed_by, closed_at, updated_at) = row
        return ProposalRow(
            contract_id=cid,
            proposal_id=int(pid),
            proposer=proposer,
            new_contract_hash=new_hash,
            target_contract=target,
            description=description,
            approval_threshold=int(threshold),
            timelock_delay=int(timelock),
            status=ProposalStatus(status),
            current_approvals=int(approvals),
            created_at=int(created_at),
            created_position=Position(int(c_ledger), c_tx, int(c_idx)),
            last_position=Position(int(l_ledger), l_tx, int(l_idx)),
            closed_by=closed_by,
            closed_at=int_from_db(closed_at),
            updated_at=ts_from_db(updated_at),
        )

    def insert_proposal(self, p: ProposalRow) -> None:
        self._cur.execute(
            q.INSERT_PROPOSAL,
            [
                p.contract_id, int_to_db(p.proposal_id), p.proposer, p.new_contract_hash,
                p.target_contract, p.description, p.approval_threshold,
                int_to_db(p.timelock_delay), p.status.value, p.current_approvals,
                int_to_db(p.created_at), *pos_params(p.created_position),
                *pos_params(p.last_position), p.closed_by, int_to_db(p.closed_at),
                ts_to_db(p.updated_at),
            ],
        )

    def update_proposal(self, p: ProposalRow) -> None:
        self._cur.execute(
            q.UPDATE_PROPOSAL,
            [
                p.status.value, p.current_approvals, *pos_params(p.last_position),
                p.closed_by, int_to_db(p.closed_at), ts_to_db(p.updated_at),
                p.contract_id, int_to_db(p.proposal_id),
            ],
        )

    def get_approval(self, contract_id: str, proposal_id: int, position: Position) -> ApprovalRow | None:
        row = self._one(q.SELECT_APPROVAL, [contract_id, int_to_db(proposal_id), *pos_params(position)])
        if row is None:
            return None
        cid, pid, ledger, tx_hash, idx, approver, approvals, threshold, ts = row
        return ApprovalRow(
            contract_id=cid,
            proposal_id=int(pid),
            position=Position(int(ledger), tx_hash, int(idx)),
            approver=approver,
            current_approvals=int(approvals),
            threshold=int(threshold),
            timestamp=int(ts),
        )

    def insert_approval(self, a: ApprovalRow) -> None:
        self._cur.execute(
            q.INSERT_APPROVAL,
            [
                a.contract_id, int_to_db(a.proposal_id), *pos_params(a.position), a.approver,
                a.current_approvals, a.threshold, int_to_db(a.timestamp),
            ],
        )

    # ---------- rewards ----------

    def get_reward(self, contract_id: str, reward_id: int) -> RewardRow | None:
        row = self._one(q.SELECT_REWARD, [contract_id, int_to_db(reward_id)])
        if row is None:
            return None
        (cid, rid, user, amount, reward_type, reason, granted_by, granted_at, ledger, tx_hash,
         idx, claimed, claimed_amount, claimed_at, c_ledger, c_tx, c_idx, closed_at) = row
        return RewardRow(
            contract_id=cid,
            reward_id=int(rid),
            user=user,
            amount=int(amount),
            reward_type=reward_type,
            reason=reason,
            granted_by=granted_by,
            granted_at=int(granted_at),
            position=Position(int(ledger), tx_hash, int(idx)),
            claimed=bool(claimed),
            claimed_amount=int_from_db(claimed_amount),
            claimed_at=int_from_db(claimed_at),
            claim_position=pos_from_db(c_ledger, c_tx, c_idx),
            ledger_closed_at=ts_from_db(closed_at),
        )

    def insert_reward(self, r: RewardRow) -> None:
        self._cur.execute(
            q.INSERT_REWARD,
            [
                r.contract_id, int_to_db(r.reward_id), r.user, int_to_db(r.amount),
                r.reward_type, r.reason, r.granted_by, int_to_db(r.granted_at),
                *pos_params(r.position), r.claimed, int_to_db(r.claimed_amount),
                int_to_db(r.claimed_at), *pos_params(r.claim_position), ts_to_db(r.ledger_closed_at),
            ],
        )

    def update_reward_claim(self, r: RewardRow) -> None:
        self._cur.execute(
            q.UPDATE_REWARD_CLAIM,
            [
                r.claimed, int_to_db(r.claimed_amount), int_to_db(r.claimed_at),
                *pos_params(r.claim_position), ts_to_db(r.ledger_closed_at),
                r.contract_id, int_to_db(r.reward_id),
            ],
        )

    # ---------- grants ----------

    def get_grant(self, contract_id: str, grant_id: int) -> GrantRow | None:
        row = self._one(q.SELECT_GRANT, [contract_id, int_to_db(grant_id)])
        if row is None:
            return None
        (cid, gid, beneficiary, amount, start_time, cliff, duration, granted_at, granted_by,
         ledger, tx_hash, idx, status, claimed_amount, revoked_at, revoked_by,
         r_ledger, r_tx, r_idx, updated_at) = row
        return GrantRow(
            contract_id=cid,
            grant_id=int(gid),
            beneficiary=beneficiary,
            amount=int(amount),
            start_time=int(start_time),
            cliff=int(cliff),
            duration=int(duration),
            granted_at=int(granted_at),
            granted_by=granted_by,
            position=Position(int(ledger), tx_hash, int(idx)),
            status=GrantStatus(status),
            claimed_amount=int(claimed_amount),
            revoked_at=int_from_db(revoked_at),
            revoked_by=revoked_by,
            revoke_position=pos_from_db(r_ledger, r_tx, r_idx),
            updated_at=ts_from_db(updated_at),
        )

    def insert_grant(self, g: GrantRow) -> None:
        self._cur.execute(
            q.INSERT_GRANT,
            [
                g.contract_id, int_to_db(g.grant_id), g.beneficiary, int_to_db(g.amount),
                int_to_db(g.start_time), int_to_db(g.cliff), int_to_db(g.duration),
                int_to_db(g.granted_at), g.granted_by, *pos_params(g.position), g.status.value,
                int_to_db(g.claimed_amount), int_to_db(g.revoked_at), g.revoked_by,
                *pos_params(g.revoke_position), ts_to_db(g.updated_at),
            ],
        )

    def update_grant(self, g: GrantRow) -> None:
        self._cur.execute(
            q.UPDATE_GRANT,
            [
                g.status.value, int_to_db(g.claimed_amount), int_to_db(g.revoked_at),
                g.revoked_by, *pos_params(g.revoke_position), ts_to_db(g.updated_at),
                g.contract_id, int_to_db(g.grant_id),
            ],
        )

    def get_grant_claim(self, contract_id: str, grant_id: int, position: Position) -> GrantClaimRow | None:
        row = self._one(q.SELECT_GRANT_CLAIM, [contract_id, int_to_db(grant_id), *pos_params(position)])
        if row is None:
            return None
        cid, gid, ledger, tx_hash, idx, beneficiary, amount, claimed_at = row
        return GrantClaimRow(
            contract_id=cid,
            grant_id=int(gid),
            position=Position(int(ledger), tx_hash, int(idx)),
            beneficiary=beneficiary,
            amount=int(amount),
            claimed_at=int(claimed_at),
        )

    def insert_grant_claim(self, c: GrantClaimRow) -> None:
        self._cur.execute(
            q.INSERT_GRANT_CLAIM,
            [
                c.contract_id, int_to_db(c.grant_id), *pos_params(c.position), c.beneficiary,
                int_to_db(c.amount), int_to_db(c.claimed_at),
            ],
        )

    # ---------- errors & maintenance ----------

    def record_error(self, e: EventErrorRecord) -> None:
        self._cur.execute(
            q.INSERT_EVENT_ERROR,
            [e.contract_id, *pos_params(e.position), e.topic, e.kind, e.entity_key, e.message],
        )

    def list_errors(self) -> list[EventErrorRecord]:
        return [
            EventErrorRecord(
                contract_id=cid,
                position=Position(int(ledger), tx_hash, int(idx)),
                topic=topic,
                kind=kind,
                entity_key=key,
                message=msg,
            )
            for cid, ledger, tx_hash, idx, topic, kind, key, msg in self._cur.execute(q.SELECT_EVENT_ERRORS).fetchall()
        ]

    def clear(self) -> None:
        """Delete every derived row (used before a rebuild)."""
        for table in q.DERIVED_TABLES:
            self._cur.execute(f"DELETE FROM {table}")
