"""Event specification primitives and registry typing.

Defines lightweight dataclasses to describe how to decode events:
- `FieldSpec`: one payload key, its wire type and the target attribute
- `EventSpec`: one event rule (topic, typed event class, fields)
- `EventRegistry`: mapping from `EventTopic` → EventSpec
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Literal

from stellind.decoding.events import KnownEvent
from stellind.decoding.topics import EventTopic

FieldType = Literal["u32", "u64", "i128", "address", "hash", "string", "bool"]

INT_BOUNDS: dict[str, tuple[int, int]] = {
    "u32": (0, 2**32 - 1),
    "u64": (0, 2**64 - 1),
    "i128": (-(2**127), 2**127 - 1),
}


@dataclass(frozen=True)
class FieldSpec:
    """Describe one payload key (and the event attribute it lands in)."""

    key: str
    type: FieldType
    attr: str | None = None  # defaults to `key`

    @property
    def target(self) -> str:
        return self.attr or self.key


@dataclass(frozen=True)
class EventSpec:
    """One event decoding rule."""

    topic: EventTopic
    event_type: type[KnownEvent]
    fields: tuple[FieldSpec, ...]

    def __post_init__(self) -> None:
        if self.event_type.topic is not self.topic:
            raise ValueError(f"{self.event_type.__name__} is not the event type for {self.topic.name}")
        declared = {f.name for f in fields(self.event_type)}
        targets = {f.target for f in self.fields}
        if declared != targets:
            raise ValueError(
                f"{self.topic.name} spec fields {sorted(targets)} do not match "
                f"{self.event_type.__name__} attributes {sorted(declared)}"
            )


EventRegistry = dict[EventTopic, EventSpec]
