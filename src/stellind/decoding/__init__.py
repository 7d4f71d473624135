"""Event classification and typed decoding.

This package provides:
- Topic classification (EventTopic, UnknownTopic, classify)
- Typed event structures and the closed `DecodedEvent` union
- The explicit topic → rule dispatch table (EVENT_SPECS)
- The decoder that turns untyped payloads into typed events
"""

from stellind.decoding.decoder import decode_event
from stellind.decoding.events import DecodedEvent, KnownEvent, Unrecognized
from stellind.decoding.registry import EVENT_SPECS, check_registry
from stellind.decoding.specs import EventRegistry, EventSpec, FieldSpec
from stellind.decoding.topics import EventTopic, UnknownTopic, classify

__all__ = [
    "decode_event",
    "DecodedEvent",
    "KnownEvent",
    "Unrecognized",
    "EVENT_SPECS",
    "check_registry",
    "EventRegistry",
    "EventSpec",
    "FieldSpec",
    "EventTopic",
    "UnknownTopic",
    "classify",
]
