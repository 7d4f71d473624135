import pytest

import factories as f
from stellind.core.config import RetryPolicy
from stellind.core.errors import DecodeError, IndexerError, TransientStorageError
from stellind.core.models import Position, canonical_json


def test_position_order_is_lexicographic() -> None:
    a = Position(10, f.tx_hash(2), 5)
    b = Position(10, f.tx_hash(3), 0)
    c = Position(11, f.tx_hash(1), 0)
    assert sorted([c, b, a]) == [a, b, c]
    assert Position(10, f.tx_hash(2), 4) < a


def test_position_normalizes_tx_hash() -> None:
    assert Position(1, "0x" + "AB" * 32, 0) == Position(1, "ab" * 32, 0)


@pytest.mark.parametrize("tx", ["", "ab", "zz" * 32, "ab" * 33])
def test_position_rejects_malformed_hash(tx: str) -> None:
    with pytest.raises(ValueError):
        Position(1, tx, 0)


def test_position_rejects_negative_parts() -> None:
    with pytest.raises(ValueError):
        Position(-1, f.tx_hash(1), 0)


def test_canonical_json_is_key_order_independent() -> None:
    assert canonical_json({"b": 1, "a": [2, "x"]}) == canonical_json({"a": [2, "x"], "b": 1}) == '{"a":[2,"x"],"b":1}'


def test_retry_delays_are_bounded() -> None:
    policy = RetryPolicy(base_delay_s=0.5, multiplier=2.0, max_delay_s=3.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_errors_render_their_context() -> None:
    err = DecodeError("missing field 'x'", {"y": 1}, contract_id=f.DEX, position=f.pos(3))
    assert isinstance(err, IndexerError)
    assert not err.retriable
    assert "missing field 'x'" in str(err)
    assert f"contract={f.DEX}" in str(err)
    assert TransientStorageError("busy").retriable
