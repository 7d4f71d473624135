from __future__ import annotations

import logging

from stellind.core.interfaces import IIndexerStore
from stellind.core.use_cases.pipeline import BatchResult, EventPipeline

logger = logging.getLogger(__name__)


def rebuild_projections(store: IIndexerStore, *, pipeline: EventPipeline | None = None) -> BatchResult:
    """
    Drop all derived state and re-project it from the indexed-event log.

    Clear and replay share one transaction: a failed replay rolls back to the
    previous derived state, which is consistent with the checkpoints. The log
    and the checkpoints are never touched.
    """
    pipeline = pipeline or EventPipeline()
    session = store.session()
    try:
        with session.transaction() as uow:
            uow.projections.clear()
            result = pipeline.replay(uow)
    finally:
        session.close()
    logger.info(
        "rebuild replayed %d events (applied=%d noop=%d skipped=%d errors=%d)",
        result.seen, result.applied, result.noop, result.skipped, result.entity_errors,
    )
    return result
