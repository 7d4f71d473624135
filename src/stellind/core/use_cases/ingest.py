from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from stellind.core.config import IngestConfig
from stellind.core.errors import IndexerError, TransientStorageError
from stellind.core.interfaces import IIndexerStore, IRawEventSource, ISession
from stellind.core.models import Position, RawEvent
from stellind.core.use_cases.pipeline import BatchResult, EventPipeline

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@dataclass(kw_only=True)
class IngestStats:
    """
    Aggregated counters for an ingest run.

    Mutated by the per-contract workers; `paused_contracts` maps a contract to
    the reason its worker stopped early.
    """

    events_seen: int = 0
    applied: int = 0
    noop: int = 0
    skipped: int = 0
    replayed: int = 0
    decode_failures: int = 0
    unrecognized: int = 0
    ordering_violations: int = 0
    entity_errors: int = 0
    batches_committed: int = 0
    transient_retries: int = 0
    checkpoints: dict[str, Position] = field(default_factory=dict)
    paused_contracts: dict[str, str] = field(default_factory=dict)

    def add(self, r: BatchResult) -> None:
        self.events_seen += r.seen
        self.applied += r.applied
        self.noop += r.noop
        self.skipped += r.skipped
        self.replayed += r.replayed
        self.decode_failures += r.decode_failures
        self.unrecognized += r.unrecognized
        self.ordering_violations += r.ordering_violations
        self.entity_errors += r.entity_errors
        self.batches_committed += 1
        if r.contract_id is not None and r.checkpoint is not None:
            self.checkpoints[r.contract_id] = r.checkpoint


@dataclass(slots=True, frozen=True)
class _EndOfStream:
    error: Exception | None = None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class IngestService:
    """
    Runs one worker per contract stream.

    Each worker owns a storage session, a reader task feeding a bounded queue
    (so a slow worker stops fetching for its contract) and commits batches of
    consecutive events through `EventPipeline`. Workers share nothing but the
    commit semaphore; a failure in one never stops the others.
    """

    def __init__(
        self,
        source: IRawEventSource,
        store: IIndexerStore,
        *,
        config: IngestConfig | None = None,
        pipeline: EventPipeline | None = None,
        on_error: Callable[[IndexerError], None] | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._config = config or IngestConfig()
        self._pipeline = pipeline or EventPipeline()
        self._on_error = on_error
        self._stopping = asyncio.Event()
        self._sem: asyncio.Semaphore | None = None

    def stop(self) -> None:
        """Ask workers to exit after their current commit."""
        self._stopping.set()

    async def run(self, contract_ids: Sequence[str] | None = None) -> IngestStats:
        stats = IngestStats()
        ids = list(contract_ids) if contract_ids else await self._source.contracts()
        if not ids:
            return stats

        self._sem = asyncio.Semaphore(self._config.concurrency)
        tasks = [
            asyncio.create_task(self._run_contract(cid, stats), name=f"stellind-worker:{cid}")
            for cid in ids
        ]
        await asyncio.gather(*tasks)
        return stats

    # ---------- worker ----------

    async def _run_contract(self, contract_id: str, stats: IngestStats) -> None:
        session = self._store.session()
        try:
            after = await asyncio.to_thread(self._resume_position, session, contract_id)
            logger.info("worker started [contract=%s resume_after=%s]", contract_id, after)
            queue: asyncio.Queue[RawEvent | _EndOfStream] = asyncio.Queue(maxsize=self._config.queue_size)
            reader = asyncio.create_task(self._read(contract_id, after, queue))
            try:
                await self._consume(session, contract_id, queue, stats)
            finally:
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)
        except Exception as e:
            logger.exception("worker for %s failed", contract_id)
            stats.paused_contracts[contract_id] = f"{type(e).__name__}: {e}"
        finally:
            session.close()
        logger.info("worker stopped [contract=%s]", contract_id)

    @staticmethod
    def _resume_position(session: ISession, contract_id: str) -> Position | None:
        with session.transaction() as uow:
            return uow.checkpoints.resume_position(contract_id)

    async def _read(self, contract_id: str, after: Position | None, queue: asyncio.Queue) -> None:
        error: Exception | None = None
        start = after if self._config.strict_resume else None
        try:
            async for raw in self._source.stream(contract_id, start):
                await queue.put(raw)
        except Exception as e:
            error = e
        await queue.put(_EndOfStream(error))

    async def _consume(
        self,
        session: ISession,
        contract_id: str,
        queue: asyncio.Queue,
        stats: IngestStats,
    ) -> None:
        while not self._stopping.is_set():
            batch, end = await self._next_batch(queue)
            if self._stopping.is_set():
                # uncommitted events are re-read from the checkpoint next run
                break
            if batch and not await self._commit_with_retry(session, contract_id, batch, stats):
                return
            if end is not None:
                if end.error is not None:
                    logger.error("source stream for %s failed: %s", contract_id, end.error)
                    stats.paused_contracts[contract_id] = f"source error: {end.error}"
                return

    async def _next_batch(self, queue: asyncio.Queue) -> tuple[list[RawEvent], _EndOfStream | None]:
        """Collect up to `batch_size` events, lingering briefly for stragglers."""
        cfg = self._config
        loop = asyncio.get_running_loop()
        batch: list[RawEvent] = []
        deadline: float | None = None
        while len(batch) < cfg.batch_size and not self._stopping.is_set():
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                timeout = cfg.batch_linger_s if deadline is None else max(0.0, deadline - loop.time())
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=timeout)
                except TimeoutError:
                    if batch:
                        break
                    continue
            if isinstance(item, _EndOfStream):
                return batch, item
            batch.append(item)
            if deadline is None:
                deadline = loop.time() + cfg.batch_linger_s
        return batch, None

    async def _commit_with_retry(
        self,
        session: ISession,
        contract_id: str,
        batch: list[RawEvent],
        stats: IngestStats,
    ) -> bool:
        """Commit one batch; False when retries are exhausted (worker pauses)."""
        policy = self._config.retry
        assert self._sem is not None
        for attempt in range(1, policy.max_attempts + 1):
            try:
                async with self._sem:
                    result = await self._commit(session, contract_id, batch)
            except TransientStorageError as e:
                if attempt == policy.max_attempts:
                    logger.error(
                        "giving up on %s after %d attempts; batch left un-checkpointed: %s",
                        contract_id, attempt, e,
                    )
                    stats.paused_contracts[contract_id] = f"transient storage errors: {e}"
                    return False
                delay = policy.delay_for(attempt)
                stats.transient_retries += 1
                logger.warning("transient error on %s (attempt %d), retrying in %.2fs: %s", contract_id, attempt, delay, e)
                await asyncio.sleep(delay)
                continue
            stats.add(result)
            self._surface(result)
            return True
        return False

    async def _commit(self, session: ISession, contract_id: str, batch: list[RawEvent]) -> BatchResult:
        task = asyncio.ensure_future(asyncio.to_thread(self._pipeline.process_batch, session, contract_id, batch))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # the session must outlive the in-flight commit
            await asyncio.wait([task])
            raise

    def _surface(self, result: BatchResult) -> None:
        if self._on_error is None:
            return
        for err in result.errors:
            self._on_error(err)
