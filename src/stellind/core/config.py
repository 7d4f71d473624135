from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient storage errors."""

    max_attempts: int = 5
    base_delay_s: float = 0.5
    multiplier: float = 2.0
    max_delay_s: float = 10.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return min(self.max_delay_s, self.base_delay_s * self.multiplier ** (attempt - 1))


@dataclass(frozen=True)
class IngestConfig:
    """Worker-level settings for the ingest service."""

    batch_size: int = 100
    batch_linger_s: float = 0.25
    queue_size: int = 1_000
    concurrency: int = 8
    strict_resume: bool = True  # ask sources to start strictly after the checkpoint
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True)
class IndexerConfig:
    """Configuration for a full indexer run (CLI)."""

    db_path: Path = Path("./stellind.duckdb")
    contracts: tuple[str, ...] = ()  # empty → every contract the source knows
    threads: int = 4
    memory_limit: str = "1GB"
    ingest: IngestConfig = field(default_factory=IngestConfig)
