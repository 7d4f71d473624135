import json
from datetime import timezone
from pathlib import Path

import pytest

import factories as f
from stellind.clients.sources import JsonlEventSource, MemoryEventSource, RawEventRecord, iter_jsonl


def line(contract: str, topic: str, payload, ledger: int, idx: int = 0, **over) -> str:
    rec = {
        "contract_id": contract,
        "topic": topic,
        "payload": payload,
        "ledger": ledger,
        "tx_hash": f.tx_hash(ledger),
        "event_index": idx,
        "ledger_closed_at": "2024-05-01T12:00:00Z",
    }
    rec.update(over)
    return json.dumps(rec)


async def collect(source, contract, after=None):
    return [ev async for ev in source.stream(contract, after)]


def test_record_normalizes_tx_hash_and_timezone() -> None:
    rec = RawEventRecord.model_validate(
        {
            "contract_id": f.DEX,
            "topic": "trade",
            "payload": {"a": 1},
            "ledger": 5,
            "tx_hash": "0x" + "AB" * 32,
            "event_index": 0,
            "ledger_closed_at": "2024-05-01T12:00:00",
        }
    )
    ev = rec.to_raw_event()
    assert ev.position.tx_hash == "ab" * 32
    assert ev.ledger_closed_at.tzinfo is timezone.utc


def test_record_rejects_bad_tx_hash() -> None:
    with pytest.raises(ValueError):
        RawEventRecord.model_validate(
            {
                "contract_id": f.DEX,
                "topic": "trade",
                "payload": {},
                "ledger": 5,
                "tx_hash": "nope",
                "event_index": 0,
                "ledger_closed_at": "2024-05-01T12:00:00Z",
            }
        )


def test_iter_jsonl_reports_line_number(tmp_path: Path) -> None:
    path = tmp_path / "events.ndjson"
    path.write_text(line(f.DEX, "trade", f.trade(), 10) + "\n\n" + '{"ledger": -1}\n')
    with pytest.raises(ValueError, match=r"events.ndjson:3"):
        list(iter_jsonl(path))


def test_iter_jsonl_keeps_big_integers_exact(tmp_path: Path) -> None:
    path = tmp_path / "events.ndjson"
    path.write_text(line(f.DEX, "trade", f.trade(amount=2**126), 10) + "\n")
    (ev,) = iter_jsonl(path)
    assert ev.payload["amount"] == 2**126


@pytest.mark.asyncio
async def test_jsonl_source_streams_per_contract(tmp_path: Path) -> None:
    path = tmp_path / "events.ndjson"
    path.write_text(
        "\n".join(
            [
                line(f.DEX, "trade", f.trade(1), 10),
                line(f.GOV, "propose", f.propose(), 11),
                line(f.DEX, "trade", f.trade(2), 12),
            ]
        )
    )
    source = JsonlEventSource(path)

    assert await source.contracts() == [f.DEX, f.GOV]
    dex = await collect(source, f.DEX)
    assert [e.position.ledger for e in dex] == [10, 12]
    assert [e.position.ledger for e in await collect(source, f.DEX, after=f.pos(10))] == [12]


@pytest.mark.asyncio
async def test_memory_source_keeps_delivery_order() -> None:
    events = [f.raw("trade", f.trade(2), 12), f.raw("trade", f.trade(1), 10), f.raw("trade", f.trade(2), 12)]
    source = MemoryEventSource(events, honor_resume=False)
    got = await collect(source, f.DEX, after=f.pos(12))
    assert got == events


@pytest.mark.asyncio
async def test_jsonl_source_reads_lazily(tmp_path: Path) -> None:
    path = tmp_path / "events.ndjson"
    path.write_text(
        "\n".join(
            [
                line(f.DEX, "trade", f.trade(1), 10),
                line(f.DEX, "trade", f.trade(2), 11),
                '{"ledger": "not an event"}',
            ]
        )
    )
    stream = JsonlEventSource(path, chunk_lines=1).stream(f.DEX, None)

    assert (await anext(stream)).position.ledger == 10
    assert (await anext(stream)).position.ledger == 11
    with pytest.raises(ValueError, match=r"events.ndjson:3"):
        await anext(stream)


def test_jsonl_source_rejects_empty_chunks(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="chunk_lines"):
        JsonlEventSource(tmp_path / "events.ndjson", chunk_lines=0)
