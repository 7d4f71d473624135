import pyarrow.parquet as pq
import pytest

import factories as f
from stellind.storage.export import EXPORT_TABLES, export_snapshot
from stellind.storage.queries import (
    fetch_approvals,
    fetch_checkpoints,
    fetch_event_errors,
    fetch_failed_events,
    fetch_grant_claims,
    fetch_grants,
    fetch_proposals,
    fetch_rewards,
    fetch_table,
    fetch_trades,
    get_connection,
)


@pytest.fixture
def populated(store, pipeline):
    session = store.session()
    try:
        pipeline.process_batch(
            session,
            f.GOV,
            [
                f.raw("propose", f.propose(7), 10, contract=f.GOV),
                f.raw("approve", f.approve(7, f.ALICE, 1), 11, contract=f.GOV),
                f.raw("propose", f.propose(8), 12, contract=f.GOV),
                f.raw("cancel", f.cancel(8), 13, contract=f.GOV),
                f.raw("cancel", f.cancel(8), 14, contract=f.GOV),
            ],
        )
        pipeline.process_batch(
            session,
            f.DEX,
            [
                f.raw("trade", f.trade(1, amount=str(2**120)), 10),
                f.raw("reward", f.reward(42, user=f.ALICE), 11),
                f.raw("reward", f.reward(43, user=f.BOB), 12),
                f.raw("grant", f.grant(1), 13),
                f.raw("trade", {"trade_id": "x"}, 14),
                f.raw("claim", f.vest_claim(1, amount=250), 15),
            ],
        )
    finally:
        session.close()
    con = store.connection()
    yield con
    con.close()


def test_fetch_proposals_by_status(populated) -> None:
    df = fetch_proposals(populated, f.GOV, status="pending")
    assert df["proposal_id"].tolist() == ["7"]
    assert df["current_approvals"].tolist() == [1]
    assert len(fetch_proposals(populated)) == 2


def test_fetch_approvals(populated) -> None:
    df = fetch_approvals(populated, f.GOV, 7)
    assert df["approver"].tolist() == [f.ALICE]


def test_amounts_are_exact_strings(populated) -> None:
    df = fetch_trades(populated, f.DEX)
    assert int(df.loc[0, "amount"]) == 2**120


def test_filters(populated) -> None:
    assert fetch_rewards(populated, user=f.BOB)["reward_id"].tolist() == ["43"]
    assert len(fetch_rewards(populated, f.GOV)) == 0
    assert fetch_grants(populated, beneficiary=f.BOB)["status"].tolist() == ["active"]


def test_fetch_grant_claims(populated) -> None:
    df = fetch_grant_claims(populated, f.DEX, 1)
    assert df["amount"].tolist() == ["250"]
    assert df["beneficiary"].tolist() == [f.BOB]
    assert len(fetch_grant_claims(populated, f.DEX, 2)) == 0


def test_operational_views(populated) -> None:
    errors = fetch_event_errors(populated)
    assert errors["entity_key"].tolist() == ["proposal:8"]
    assert errors["kind"].tolist() == ["invalid_transition"]
    assert fetch_failed_events(populated, f.DEX)["ledger"].tolist() == [14]
    assert sorted(fetch_checkpoints(populated)["contract_id"]) == sorted([f.DEX, f.GOV])


def test_fetch_table_rejects_unknown_tables(populated) -> None:
    with pytest.raises(ValueError, match="unknown table"):
        fetch_table(populated, "trades; DROP TABLE trades")


def test_read_only_connection(file_store, pipeline, tmp_path) -> None:
    session = file_store.session()
    pipeline.process_batch(session, f.DEX, [f.raw("trade", f.trade(1), 10)])
    session.close()
    file_store.close()

    with get_connection(tmp_path / "index.duckdb") as con:
        assert len(fetch_trades(con)) == 1


@pytest.mark.filterwarnings("error::DeprecationWarning")
def test_export_snapshot_writes_parquet(populated, tmp_path) -> None:
    paths = export_snapshot(populated, tmp_path / "out")

    assert sorted(p.stem for p in paths) == sorted(EXPORT_TABLES)
    trades = pq.read_table(tmp_path / "out" / "trades.parquet")
    assert trades.num_rows == 1
    assert trades.column("amount").to_pylist() == [str(2**120)]
    assert pq.read_metadata(tmp_path / "out" / "proposals.parquet").row_group(0).column(0).compression == "ZSTD"
    assert pq.read_table(tmp_path / "out" / "grant_claims.parquet").num_rows == 1
