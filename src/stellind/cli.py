import asyncio
import logging
import time
from pathlib import Path

import click
import pandas as pd
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from stellind.core.config import IndexerConfig, IngestConfig, RetryPolicy
from stellind.core.errors import IndexerError

console = Console()
err_console = Console(stderr=True)

DB_OPTION = click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("./stellind.duckdb"),
    show_default=True,
    envvar="STELLIND_DB",
    help="DuckDB database file",
)


EXISTING_DB_OPTION = click.option(
    "--db",
    "db_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=Path("./stellind.duckdb"),
    show_default=True,
    envvar="STELLIND_DB",
    help="DuckDB database file written by `stellind ingest`",
)


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING if verbose == 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _df_table(title: str, df: pd.DataFrame) -> Table:
    table = Table(title=title, show_lines=False)
    for col in df.columns:
        table.add_column(str(col), overflow="fold")
    for row in df.itertuples(index=False):
        table.add_row(*("" if pd.isna(v) else str(v) for v in row))
    return table


@click.group()
@click.option("-v", "--verbose", count=True, help="-v for INFO, -vv for DEBUG logs")
def cli(verbose: int) -> None:
    """stellind: off-chain event indexer for Stellara contracts."""
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@cli.command("ingest")
@DB_OPTION
@click.option(
    "--source",
    "source_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    envvar="STELLIND_SOURCE",
    help="NDJSON file of raw contract events",
)
@click.option("--contract", "contracts", multiple=True, envvar="STELLIND_CONTRACTS", help="Contract id; repeat to select several (default: all)")
@click.option("--batch-size", type=int, default=100, show_default=True, envvar="STELLIND_BATCH_SIZE", help="Events per transaction")
@click.option("--linger", type=float, default=0.25, show_default=True, envvar="STELLIND_LINGER", help="Seconds to wait for a batch to fill")
@click.option("--queue-size", type=int, default=1_000, show_default=True, envvar="STELLIND_QUEUE_SIZE", help="Per-contract buffered events")
@click.option("--concurrency", type=int, default=8, show_default=True, envvar="STELLIND_CONCURRENCY", help="Max concurrent commits")
@click.option("--max-attempts", type=int, default=5, show_default=True, envvar="STELLIND_MAX_ATTEMPTS", help="Attempts per batch on transient storage errors")
@click.option("--threads", type=int, default=4, show_default=True, envvar="STELLIND_THREADS", help="DuckDB threads")
@click.option("--memory-limit", type=str, default="1GB", show_default=True, envvar="STELLIND_MEMORY_LIMIT", help="DuckDB memory limit")
def ingest_cmd(
    db_path: Path,
    source_path: Path,
    contracts: tuple[str, ...],
    batch_size: int,
    linger: float,
    queue_size: int,
    concurrency: int,
    max_attempts: int,
    threads: int,
    memory_limit: str,
) -> None:
    """Ingest raw events, project derived state and advance checkpoints."""
    if batch_size < 1 or queue_size < 1 or concurrency < 1 or max_attempts < 1:
        raise click.UsageError("--batch-size, --queue-size, --concurrency and --max-attempts must be >= 1")

    from stellind.clients.sources import JsonlEventSource
    from stellind.core.use_cases.ingest import IngestService
    from stellind.storage.duckdb_store import DuckDBStore

    config = IndexerConfig(
        db_path=db_path,
        contracts=contracts,
        threads=threads,
        memory_limit=memory_limit,
        ingest=IngestConfig(
            batch_size=batch_size,
            batch_linger_s=linger,
            queue_size=queue_size,
            concurrency=concurrency,
            retry=RetryPolicy(max_attempts=max_attempts),
        ),
    )

    surfaced = 0

    def on_error(err: IndexerError) -> None:
        nonlocal surfaced
        surfaced += 1

    t0 = time.time()
    try:
        with DuckDBStore(config.db_path, threads=config.threads, memory_limit=config.memory_limit) as store:
            store.init_schema()
            service = IngestService(
                JsonlEventSource(source_path),
                store,
                config=config.ingest,
                on_error=on_error,
            )
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold]indexing[/]"),
                TextColumn("{task.description}"),
                TimeElapsedColumn(),
                console=err_console,
                transient=True,
            )
            with progress:
                progress.add_task(description=source_path.name, total=None)
                stats = asyncio.run(service.run(list(config.contracts) or None))
    except (IndexerError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    elapsed = time.time() - t0
    console.print(f"[bold]done[/]: {stats.events_seen} events • {stats.batches_committed} batches • {elapsed:.2f}s")
    console.print(
        f"[bold]summary[/]: "
        f"[green]applied[/]={stats.applied}  "
        f"noop={stats.noop}  skipped={stats.skipped}  replayed={stats.replayed}  "
        f"[yellow]unrecognized[/]={stats.unrecognized}  "
        f"[red]decode_failures[/]={stats.decode_failures}  "
        f"[red]entity_errors[/]={stats.entity_errors}  "
        f"[red]ordering_violations[/]={stats.ordering_violations}  "
        f"retries={stats.transient_retries}"
    )
    if stats.checkpoints:
        table = Table(title="checkpoints")
        table.add_column("contract")
        table.add_column("position")
        for cid, pos in sorted(stats.checkpoints.items()):
            table.add_row(cid, str(pos))
        console.print(table)
    if stats.paused_contracts:
        lines = "\n".join(f"  {cid}: {reason}" for cid, reason in sorted(stats.paused_contracts.items()))
        raise click.ClickException(f"{len(stats.paused_contracts)} contract worker(s) paused:\n{lines}")


# ---------------------------------------------------------------------------
# rebuild
# ---------------------------------------------------------------------------


def _snapshot(store) -> dict[str, list[tuple]]:
    from stellind.storage.queries import snapshot

    con = store.connection()
    try:
        return snapshot(con)
    finally:
        con.close()


@cli.command("rebuild")
@EXISTING_DB_OPTION
@click.option("--verify/--no-verify", default=False, show_default=True, help="Fail unless the rebuilt tables equal the current ones")
def rebuild_cmd(db_path: Path, verify: bool) -> None:
    """Drop derived tables and re-project them from the indexed-event log."""
    from stellind.core.use_cases.rebuild import rebuild_projections
    from stellind.storage.duckdb_store import DuckDBStore

    try:
        with DuckDBStore(db_path) as store:
            store.init_schema()
            before = _snapshot(store) if verify else None
            result = rebuild_projections(store)
            after = _snapshot(store) if verify else None
    except IndexerError as e:
        raise click.ClickException(str(e)) from e

    console.print(
        f"[bold]rebuilt[/]: {result.seen} events • applied={result.applied} noop={result.noop} "
        f"skipped={result.skipped} entity_errors={result.entity_errors}"
    )
    if before is not None and after is not None:
        diff = [t for t in before if before[t] != after[t]]
        if diff:
            raise click.ClickException(f"rebuilt state differs from previous state in: {', '.join(diff)}")
        console.print("[green]verified[/]: derived tables identical")


# ---------------------------------------------------------------------------
# inspection
# ---------------------------------------------------------------------------


@cli.command("checkpoints")
@EXISTING_DB_OPTION
def checkpoints_cmd(db_path: Path) -> None:
    """Show the last applied position per contract."""
    from stellind.storage.queries import fetch_checkpoints, fetch_status_summary, get_connection

    with get_connection(db_path) as con:
        console.print(_df_table("checkpoints", fetch_checkpoints(con)))
        console.print(_df_table("indexed events", fetch_status_summary(con)))


@cli.command("errors")
@EXISTING_DB_OPTION
@click.option("--contract", "contract_id", default=None, help="Only this contract")
@click.option("--decode/--no-decode", "show_decode", default=True, show_default=True, help="Also list undecodable events")
def errors_cmd(db_path: Path, contract_id: str | None, show_decode: bool) -> None:
    """List entity-level errors (and decode failures) recorded during ingest."""
    from stellind.storage.queries import fetch_event_errors, fetch_failed_events, get_connection

    with get_connection(db_path) as con:
        console.print(_df_table("entity errors", fetch_event_errors(con, contract_id)))
        if show_decode:
            console.print(_df_table("decode failures", fetch_failed_events(con, contract_id)))


@cli.command("export")
@EXISTING_DB_OPTION
@click.option("--out", "out_dir", type=click.Path(file_okay=False, path_type=Path), required=True, help="Output directory")
@click.option("--codec", type=click.Choice(["zstd", "snappy", "gzip", "none"]), default="zstd", show_default=True)
def export_cmd(db_path: Path, out_dir: Path, codec: str) -> None:
    """Write derived tables and checkpoints as Parquet files."""
    from stellind.storage.export import export_snapshot
    from stellind.storage.queries import get_connection

    with get_connection(db_path) as con:
        paths = export_snapshot(con, out_dir, codec=codec)
    for p in paths:
        console.print(f"💾 wrote → {p}")


if __name__ == "__main__":
    cli()
