"""Typed event decoder.

Translates a classified topic plus an untyped JSON payload into one of the
`DecodedEvent` variants using the `EVENT_SPECS` dispatch table. Decoding is
pure: the same input always yields the same event (or the same error).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from stellind.core.errors import DecodeError
from stellind.core.models import Position, canonical_json
from stellind.decoding.events import DecodedEvent, Unrecognized
from stellind.decoding.registry import EVENT_SPECS
from stellind.decoding.specs import EventRegistry
from stellind.decoding.topics import ClassifiedTopic, UnknownTopic
from stellind.decoding.utils import parse_field


def decode_event(
    topic: ClassifiedTopic,
    payload: Any,
    position: Position | None = None,
    *,
    registry: EventRegistry = EVENT_SPECS,
) -> DecodedEvent:
    """Decode `payload` for `topic`; raise `DecodeError` if it does not fit.

    Unknown topics never fail: they decode to `Unrecognized` carrying the
    canonical payload bytes.
    """
    if isinstance(topic, UnknownTopic):
        return Unrecognized(topic_symbol=topic.value, raw_payload=canonical_json(payload).encode())

    ctx = {"position": position, "topic": topic.value}
    spec = registry[topic]
    if not isinstance(payload, Mapping):
        raise DecodeError(f"payload must be an object, got {type(payload).__name__}", payload, **ctx)

    values: dict[str, Any] = {}
    for fs in spec.fields:
        if fs.key not in payload:
            raise DecodeError(f"missing field {fs.key!r}", payload, **ctx)
        try:
            values[fs.target] = parse_field(payload[fs.key], fs)
        except ValueError as e:
            raise DecodeError(f"field {fs.key!r}: {e}", payload, **ctx) from e

    return spec.event_type(**values)
