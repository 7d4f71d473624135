from stellind.core.use_cases.ingest import IngestService, IngestStats
from stellind.core.use_cases.pipeline import BatchResult, EventPipeline
from stellind.core.use_cases.rebuild import rebuild_projections

__all__ = ["BatchResult", "EventPipeline", "IngestService", "IngestStats", "rebuild_projections"]
