"""Decoding utilities: typed field parsers for untyped JSON payloads."""

from __future__ import annotations

import re
from typing import Any

from .specs import INT_BOUNDS, FieldSpec

_STRKEY_RE = re.compile(r"^[GC][A-Z2-7]{55}$")
_HASH_RE = re.compile(r"^[0-9a-f]{64}$")
_DECIMAL_RE = re.compile(r"^-?[0-9]+$")


class FieldError(ValueError):
    """A single payload field failed to parse."""


def parse_int(value: Any, typ: str) -> int:
    """Parse an on-chain integer from a JSON int or a decimal string (never a float)."""
    if isinstance(value, bool):
        raise FieldError(f"expected {typ}, got bool")
    if isinstance(value, int):
        v = value
    elif isinstance(value, str) and _DECIMAL_RE.match(value.strip()):
        v = int(value.strip())
    else:
        raise FieldError(f"expected {typ} as integer or decimal string, got {type(value).__name__}")
    lo, hi = INT_BOUNDS[typ]
    if not lo <= v <= hi:
        raise FieldError(f"{v} out of range for {typ}")
    return v


def parse_address(value: Any) -> str:
    """Stellar strkey: G… (account) or C… (contract)."""
    if not isinstance(value, str) or not _STRKEY_RE.match(value):
        raise FieldError(f"expected strkey address, got {value!r}")
    return value


def parse_hash(value: Any) -> str:
    """32-byte hex digest, normalized to lowercase without 0x."""
    if not isinstance(value, str):
        raise FieldError(f"expected hex digest, got {type(value).__name__}")
    h = value.lower()
    if h.startswith("0x"):
        h = h[2:]
    if not _HASH_RE.match(h):
        raise FieldError(f"expected 32-byte hex digest, got {value!r}")
    return h


def parse_field(value: Any, spec: FieldSpec) -> Any:
    """Parse one payload value according to the declared type."""
    t = spec.type
    if t in INT_BOUNDS:
        return parse_int(value, t)
    if t == "address":
        return parse_address(value)
    if t == "hash":
        return parse_hash(value)
    if t == "string":
        if not isinstance(value, str):
            raise FieldError(f"expected string, got {type(value).__name__}")
        return value
    if t == "bool":
        if not isinstance(value, bool):
            raise FieldError(f"expected bool, got {type(value).__name__}")
        return value
    raise FieldError(f"unsupported field type {t!r}")
