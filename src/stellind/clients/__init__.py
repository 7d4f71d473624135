"""Raw event sources feeding the ingest service."""

from stellind.clients.sources import JsonlEventSource, MemoryEventSource, RawEventRecord, iter_jsonl

__all__ = ["JsonlEventSource", "MemoryEventSource", "RawEventRecord", "iter_jsonl"]
