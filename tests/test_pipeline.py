import json
import logging

import pytest

import factories as f
from stellind.core.errors import IntegrityError, OrderingViolation, TransientStorageError
from stellind.core.use_cases.pipeline import EventPipeline
from stellind.core.use_cases.rebuild import rebuild_projections


def run(store, pipeline, events, contract=f.DEX):
    session = store.session()
    try:
        return pipeline.process_batch(session, contract, events)
    finally:
        session.close()


def logged(store, contract=f.DEX):
    with store.transaction() as uow:
        return list(uow.events.iter_events(contract))


def checkpoint(store, contract=f.DEX):
    with store.transaction() as uow:
        return uow.checkpoints.resume_position(contract)


def test_batch_logs_projects_and_checkpoints(store, pipeline) -> None:
    events = [
        f.raw("trade", f.trade(1), 10),
        f.raw("trade", f.trade(2), 10, 1),
        f.raw("transfer", f.transfer(), 11),
    ]
    result = run(store, pipeline, events)

    assert (result.seen, result.applied, result.skipped) == (3, 2, 1)
    assert result.checkpoint == f.pos(11)
    assert checkpoint(store) == f.pos(11)

    log = logged(store)
    assert [e.position for e in log] == [e.position for e in events]
    assert all(e.decode_status == "decoded" for e in log)
    assert json.loads(log[0].decoded_payload)["amount"] == "1000000000"
    assert log[0].raw_payload == events[0].raw_payload


def test_redelivered_batch_is_a_replay(store, pipeline, state) -> None:
    events = [f.raw("trade", f.trade(1), 10), f.raw("trade", f.trade(2), 11)]
    run(store, pipeline, events)
    before = state(store)

    result = run(store, pipeline, events)

    assert result.replayed == 2
    assert result.applied == 0
    assert result.ordering_violations == 0
    assert state(store) == before
    assert len(logged(store)) == 2


def test_stale_event_with_new_content_is_dropped(store, pipeline, state, caplog) -> None:
    run(store, pipeline, [f.raw("trade", f.trade(1), 10), f.raw("trade", f.trade(2), 11)])
    before = state(store)

    with caplog.at_level(logging.WARNING):
        result = run(store, pipeline, [f.raw("trade", f.trade(1, amount="5"), 10)])

    assert result.ordering_violations == 1
    assert isinstance(result.errors[0], OrderingViolation)
    assert "differs from the logged event" in caplog.text
    assert state(store) == before
    assert checkpoint(store) == f.pos(11)


def test_out_of_order_within_batch_is_rejected_not_reordered(store, pipeline) -> None:
    result = run(store, pipeline, [f.raw("trade", f.trade(2), 11), f.raw("trade", f.trade(1), 10)])

    assert result.applied == 1
    assert result.ordering_violations == 1
    assert "never logged" in result.errors[0].message
    assert [e.position for e in logged(store)] == [f.pos(11)]


def test_decode_failure_is_logged_and_skipped(store, pipeline) -> None:
    bad = f.trade(3)
    del bad["trader"]
    result = run(store, pipeline, [f.raw("trade", bad, 10), f.raw("trade", f.trade(4), 11)])

    assert result.decode_failures == 1
    assert result.applied == 1
    assert checkpoint(store) == f.pos(11)

    failed, ok = logged(store)
    assert failed.decode_status == "failed"
    assert failed.decode_error == "missing field 'trader'"
    assert failed.decoded_payload is None
    assert ok.decode_status == "decoded"

    with store.transaction() as uow:
        assert [e.position for e in uow.events.failures()] == [f.pos(10)]


def test_unrecognized_topic_is_logged(store, pipeline) -> None:
    result = run(store, pipeline, [f.raw("liquidate", {"who": f.ALICE}, 10)])

    assert result.unrecognized == 1
    (entry,) = logged(store)
    assert entry.decode_status == "unrecognized"
    assert entry.topic == "liquidate"
    assert checkpoint(store) == f.pos(10)


def test_entity_error_is_recorded_and_batch_continues(store, pipeline) -> None:
    result = run(
        store,
        pipeline,
        [
            f.raw("reward", f.reward(42), 10),
            f.raw("claimed", f.claimed(42, amount=100), 11),
            f.raw("claimed", f.claimed(42, amount=999), 12),
            f.raw("trade", f.trade(1), 13),
        ],
    )

    assert result.entity_errors == 1
    assert isinstance(result.errors[0], IntegrityError)
    assert result.applied == 3
    assert checkpoint(store) == f.pos(13)
    assert len(logged(store)) == 4

    with store.transaction() as uow:
        (err,) = uow.projections.list_errors()
    assert err.kind == "integrity"
    assert err.entity_key == "reward:42"
    assert err.position == f.pos(12)


def test_events_of_other_contracts_are_refused(store, pipeline) -> None:
    with pytest.raises(ValueError, match="routed"):
        run(store, pipeline, [f.raw("trade", f.trade(1), 10, contract=f.GOV)])
    assert checkpoint(store) is None


def test_checkpoint_never_moves_backwards(store) -> None:
    with store.transaction() as uow:
        uow.checkpoints.advance(f.DEX, f.pos(10))
        uow.checkpoints.advance(f.DEX, f.pos(12))
    with pytest.raises(OrderingViolation):
        with store.transaction() as uow:
            uow.checkpoints.advance(f.DEX, f.pos(11))
    assert checkpoint(store) == f.pos(12)


def test_checkpoints_are_per_contract(store, pipeline) -> None:
    run(store, pipeline, [f.raw("trade", f.trade(1), 20)])
    run(store, pipeline, [f.raw("propose", f.propose(), 5, contract=f.GOV)], contract=f.GOV)

    with store.transaction() as uow:
        cps = {c.contract_id: c.position for c in uow.checkpoints.all()}
    assert cps == {f.DEX: f.pos(20), f.GOV: f.pos(5)}


# ---- rebuild ----


def _full_history():
    gov = [
        f.raw("propose", f.propose(7, threshold=3), 10, contract=f.GOV),
        f.raw("approve", f.approve(7, f.ALICE, 1), 11, contract=f.GOV),
        f.raw("approve", f.approve(7, f.BOB, 2), 12, contract=f.GOV),
        f.raw("execute", f.execute(7), 13, contract=f.GOV),
        f.raw("approve", f.approve(7, f.CAROL, 3), 14, contract=f.GOV),  # invalid transition
    ]
    dex = [
        f.raw("trade", f.trade(1, amount=str(2**100)), 10),
        f.raw("reward", f.reward(42), 11),
        f.raw("claimed", f.claimed(42), 12),
        f.raw("grant", f.grant(1), 13),
        f.raw("claim", f.vest_claim(1, amount=250), 14),
        f.raw("revoke", f.revoke(1), 15),
        f.raw("trade", {"broken": True}, 16),
        f.raw("liquidate", {"x": 1}, 17),
    ]
    return gov, dex


def test_rebuild_reproduces_identical_derived_state(store, pipeline, state) -> None:
    gov, dex = _full_history()
    run(store, pipeline, gov, contract=f.GOV)
    run(store, pipeline, dex)
    before = state(store)
    assert before["proposals"] and before["grant_claims"] and before["event_errors"]

    result = rebuild_projections(store, pipeline=pipeline)

    assert result.seen == len(gov) + len(dex)
    assert result.entity_errors == 1
    assert result.decode_failures == 1
    assert state(store) == before


def test_rebuild_leaves_log_and_checkpoints_alone(store, pipeline) -> None:
    gov, _ = _full_history()
    run(store, pipeline, gov, contract=f.GOV)
    log_before = logged(store, f.GOV)

    rebuild_projections(store, pipeline=pipeline)

    assert logged(store, f.GOV) == log_before
    assert checkpoint(store, f.GOV) == f.pos(14)


class CrashingReplay(EventPipeline):
    """Re-projects the whole log, then fails before the rebuild commits."""

    def replay(self, uow, contract_id=None):
        super().replay(uow, contract_id)
        raise TransientStorageError("connection lost mid-rebuild")


def test_failed_rebuild_keeps_previous_derived_state(store, pipeline, state) -> None:
    trades = [f.raw("trade", f.trade(i), 10 + i) for i in range(1, 4)]
    run(store, pipeline, trades)
    before = state(store)

    with pytest.raises(TransientStorageError):
        rebuild_projections(store, pipeline=CrashingReplay())

    assert state(store) == before
    assert len(before["trades"]) == 3
    assert checkpoint(store) == f.pos(13)

    result = run(store, pipeline, trades)
    assert result.replayed == 3
    assert state(store) == before
