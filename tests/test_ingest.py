import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

import factories as f
from stellind.clients.sources import JsonlEventSource, MemoryEventSource
from stellind.core.config import IngestConfig, RetryPolicy
from stellind.core.errors import IntegrityError, TransientStorageError
from stellind.core.models import Position, RawEvent
from stellind.core.use_cases.ingest import IngestService
from stellind.core.use_cases.pipeline import EventPipeline
from stellind.storage.queries import fetch_trades

FAST = IngestConfig(batch_size=3, batch_linger_s=0.01, retry=RetryPolicy(max_attempts=3, base_delay_s=0.0))


def dex_events() -> list[RawEvent]:
    return [f.raw("trade", f.trade(i), 10 + i) for i in range(1, 8)]


def gov_events() -> list[RawEvent]:
    return [
        f.raw("propose", f.propose(7), 10, contract=f.GOV),
        f.raw("approve", f.approve(7, f.ALICE, 1), 11, contract=f.GOV),
        f.raw("approve", f.approve(7, f.BOB, 2), 12, contract=f.GOV),
        f.raw("execute", f.execute(7), 13, contract=f.GOV),
    ]


class FlakyPipeline(EventPipeline):
    """Raises a transient error for the first `failures` commits of `contract`."""

    def __init__(self, contract: str, failures: int) -> None:
        super().__init__()
        self.contract = contract
        self.failures = failures

    def process_batch(self, session, contract_id, events):
        if contract_id == self.contract and self.failures > 0:
            self.failures -= 1
            raise TransientStorageError("write-write conflict", contract_id=contract_id)
        return super().process_batch(session, contract_id, events)


class BrokenSource(MemoryEventSource):
    async def stream(self, contract_id: str, after: Position | None) -> AsyncIterator[RawEvent]:
        async for ev in super().stream(contract_id, after):
            yield ev
        raise ConnectionError("ledger RPC went away")


class CountingSource(JsonlEventSource):
    def __init__(self, path: Path, **kw) -> None:
        super().__init__(path, **kw)
        self.yielded = 0

    async def stream(self, contract_id: str, after: Position | None) -> AsyncIterator[RawEvent]:
        async for ev in super().stream(contract_id, after):
            self.yielded += 1
            yield ev


class LagTracker(EventPipeline):
    """Records how far the source has read ahead of each committed batch."""

    def __init__(self, source: CountingSource) -> None:
        super().__init__()
        self.source = source
        self.consumed = 0
        self.read_ahead: list[int] = []

    def process_batch(self, session, contract_id, events):
        self.consumed += len(events)
        self.read_ahead.append(self.source.yielded - self.consumed)
        return super().process_batch(session, contract_id, events)


class StopAfterFirstCommit(EventPipeline):
    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self.loop = loop
        self.service: IngestService | None = None

    def process_batch(self, session, contract_id, events):
        result = super().process_batch(session, contract_id, events)
        self.loop.call_soon_threadsafe(self.service.stop)
        return result


def get_proposal(store, pid: int):
    with store.transaction() as uow:
        return uow.projections.get_proposal(f.GOV, pid)


@pytest.mark.asyncio
async def test_ingest_runs_each_contract_independently(store) -> None:
    source = MemoryEventSource(dex_events() + gov_events())
    stats = await IngestService(source, store, config=FAST).run()

    assert stats.events_seen == 11
    assert stats.applied == 11
    assert stats.paused_contracts == {}
    assert stats.checkpoints == {f.DEX: f.pos(17), f.GOV: f.pos(13)}
    assert get_proposal(store, 7).status.value == "executed"


@pytest.mark.asyncio
async def test_ingest_only_selected_contracts(store) -> None:
    source = MemoryEventSource(dex_events() + gov_events())
    stats = await IngestService(source, store, config=FAST).run([f.GOV])

    assert set(stats.checkpoints) == {f.GOV}
    with store.transaction() as uow:
        assert uow.checkpoints.resume_position(f.DEX) is None


@pytest.mark.asyncio
async def test_ingest_resumes_after_checkpoint(store) -> None:
    events = dex_events()
    await IngestService(MemoryEventSource(events[:4]), store, config=FAST).run()

    stats = await IngestService(MemoryEventSource(events), store, config=FAST).run()

    assert stats.events_seen == 3
    assert stats.replayed == 0
    assert stats.checkpoints[f.DEX] == f.pos(17)


@pytest.mark.asyncio
async def test_full_redelivery_is_detected_as_replay(store, state) -> None:
    events = dex_events()
    await IngestService(MemoryEventSource(events), store, config=FAST).run()
    before = state(store)

    source = MemoryEventSource(events, honor_resume=False)
    stats = await IngestService(source, store, config=FAST).run()

    assert stats.replayed == len(events)
    assert stats.applied == 0
    assert state(store) == before


@pytest.mark.asyncio
async def test_transient_errors_are_retried(store) -> None:
    pipeline = FlakyPipeline(f.DEX, failures=2)
    stats = await IngestService(MemoryEventSource(dex_events()), store, config=FAST, pipeline=pipeline).run()

    assert stats.transient_retries == 2
    assert stats.paused_contracts == {}
    assert stats.applied == 7


@pytest.mark.asyncio
async def test_exhausted_retries_pause_only_that_contract(store) -> None:
    pipeline = FlakyPipeline(f.DEX, failures=100)
    source = MemoryEventSource(dex_events() + gov_events())
    stats = await IngestService(source, store, config=FAST, pipeline=pipeline).run()

    assert list(stats.paused_contracts) == [f.DEX]
    assert "transient" in stats.paused_contracts[f.DEX]
    assert stats.checkpoints == {f.GOV: f.pos(13)}
    with store.transaction() as uow:
        assert uow.checkpoints.resume_position(f.DEX) is None


@pytest.mark.asyncio
async def test_source_failure_pauses_contract_after_committing_what_arrived(store) -> None:
    source = BrokenSource(gov_events())
    stats = await IngestService(source, store, config=FAST).run()

    assert "ledger RPC went away" in stats.paused_contracts[f.GOV]
    assert stats.checkpoints[f.GOV] == f.pos(13)


@pytest.mark.asyncio
async def test_entity_errors_reach_callback(store) -> None:
    seen = []
    events = [
        f.raw("reward", f.reward(42), 10),
        f.raw("claimed", f.claimed(42, amount=100), 11),
        f.raw("claimed", f.claimed(42, amount=999), 12),
    ]
    stats = await IngestService(MemoryEventSource(events), store, config=FAST, on_error=seen.append).run()

    assert stats.entity_errors == 1
    assert [type(e) for e in seen] == [IntegrityError]
    assert stats.checkpoints[f.DEX] == f.pos(12)


@pytest.mark.asyncio
async def test_stopped_service_commits_nothing(store) -> None:
    service = IngestService(MemoryEventSource(dex_events()), store, config=FAST)
    service.stop()
    stats = await service.run()

    assert stats.batches_committed == 0
    with store.transaction() as uow:
        assert uow.checkpoints.resume_position(f.DEX) is None


@pytest.mark.asyncio
async def test_empty_source(store) -> None:
    stats = await IngestService(MemoryEventSource([]), store, config=FAST).run()
    assert stats.events_seen == 0
    assert stats.checkpoints == {}


@pytest.mark.asyncio
async def test_stop_between_commits_keeps_committed_batches(store) -> None:
    events = dex_events()
    pipeline = StopAfterFirstCommit(asyncio.get_running_loop())
    service = IngestService(MemoryEventSource(events), store, config=FAST, pipeline=pipeline)
    pipeline.service = service

    first = await service.run()

    assert first.batches_committed == 1
    done = first.applied
    assert 0 < done < len(events)
    with store.transaction() as uow:
        assert uow.checkpoints.resume_position(f.DEX) == events[done - 1].position

    second = await IngestService(MemoryEventSource(events), store, config=FAST).run()

    assert second.events_seen == len(events) - done
    assert second.replayed == 0
    assert second.checkpoints[f.DEX] == f.pos(17)
    con = store.connection()
    try:
        assert len(fetch_trades(con, f.DEX)) == len(events)
    finally:
        con.close()


@pytest.mark.asyncio
async def test_slow_worker_throttles_file_reading(store, tmp_path: Path) -> None:
    events = [f.raw("trade", f.trade(i), 10 + i) for i in range(1, 41)]
    path = tmp_path / "events.ndjson"
    path.write_text("\n".join(f.ndjson(ev) for ev in events) + '\n{"ledger": "garbage"}\n')
    source = CountingSource(path, chunk_lines=1)
    pipeline = LagTracker(source)
    config = IngestConfig(batch_size=2, batch_linger_s=0.01, queue_size=2, retry=RetryPolicy(max_attempts=1))

    stats = await IngestService(source, store, config=config, pipeline=pipeline).run([f.DEX])

    # everything before the bad line is committed, so it was never read up front
    assert stats.applied == len(events)
    assert stats.checkpoints[f.DEX] == f.pos(50)
    assert "invalid raw event" in stats.paused_contracts[f.DEX]
    assert max(pipeline.read_ahead) <= config.queue_size + 1
