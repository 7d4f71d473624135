import pytest

from factories import ALICE, BOB, TOKEN, WASM_HASH, pos, propose, trade, transfer
from stellind.core.errors import DecodeError
from stellind.decoding.decoder import decode_event
from stellind.decoding.events import ProposalCreated, TokenBurned, TokenTransfer, TradeExecuted, Unrecognized
from stellind.decoding.registry import EVENT_SPECS, check_registry
from stellind.decoding.topics import EventTopic, UnknownTopic, classify, topic_symbol

I128_MAX = 2**127 - 1


# ---- classification ----


@pytest.mark.parametrize("topic", list(EventTopic))
def test_classify_known_topics(topic: EventTopic) -> None:
    assert classify(topic.value) is topic
    assert topic_symbol(classify(topic.value)) == topic.value


@pytest.mark.parametrize("symbol", ["", "Trade", "trade ", "liquidate"])
def test_classify_unknown_is_not_an_error(symbol: str) -> None:
    assert classify(symbol) == UnknownTopic(symbol)


def test_registry_covers_every_topic() -> None:
    assert set(EVENT_SPECS) == set(EventTopic)
    check_registry(EVENT_SPECS)


def test_registry_check_rejects_gaps() -> None:
    partial = {t: s for t, s in EVENT_SPECS.items() if t is not EventTopic.REVOKE}
    with pytest.raises(RuntimeError, match="REVOKE"):
        check_registry(partial)


# ---- typed decoding ----


def test_decode_trade() -> None:
    ev = decode_event(EventTopic.TRADE_EXECUTED, trade(trade_id=9))
    assert isinstance(ev, TradeExecuted)
    assert ev.trade_id == 9
    assert ev.trader == ALICE
    assert ev.fee_token == TOKEN
    assert ev.amount == 1_000_000_000
    assert ev.is_buy is True


def test_decode_i128_extremes_exactly() -> None:
    ev = decode_event(EventTopic.TRADE_EXECUTED, trade(amount=str(I128_MAX), price=-(2**127)))
    assert ev.amount == I128_MAX
    assert ev.price == -(2**127)
    assert ev.to_dict()["amount"] == "170141183460469231731687303715884105727"


def test_decode_rejects_i128_overflow() -> None:
    with pytest.raises(DecodeError, match="out of range"):
        decode_event(EventTopic.TRADE_EXECUTED, trade(amount=str(I128_MAX + 1)))


def test_decode_rejects_floats_for_integers() -> None:
    with pytest.raises(DecodeError, match="'amount'"):
        decode_event(EventTopic.TRADE_EXECUTED, trade(amount=1.5))


def test_decode_rejects_bool_for_integer() -> None:
    with pytest.raises(DecodeError):
        decode_event(EventTopic.TRADE_EXECUTED, trade(trade_id=True))


def test_decode_missing_field_carries_context() -> None:
    payload = trade()
    del payload["pair"]
    p = pos(10)
    with pytest.raises(DecodeError) as exc:
        decode_event(EventTopic.TRADE_EXECUTED, payload, p)
    assert exc.value.reason == "missing field 'pair'"
    assert exc.value.position == p
    assert exc.value.topic == "trade"
    assert exc.value.raw_payload == payload


def test_decode_rejects_bad_address() -> None:
    with pytest.raises(DecodeError, match="strkey"):
        decode_event(EventTopic.TRADE_EXECUTED, trade(trader="0xdeadbeef"))


def test_decode_rejects_non_object_payload() -> None:
    with pytest.raises(DecodeError, match="object"):
        decode_event(EventTopic.TRADE_EXECUTED, ["not", "a", "map"])


def test_decode_u32_bounds() -> None:
    with pytest.raises(DecodeError):
        decode_event(EventTopic.PROPOSAL_CREATED, propose(threshold=2**32))


def test_decode_hash_is_normalized() -> None:
    ev = decode_event(EventTopic.PROPOSAL_CREATED, propose(new_contract_hash="0x" + WASM_HASH.upper()))
    assert isinstance(ev, ProposalCreated)
    assert ev.new_contract_hash == WASM_HASH


def test_decode_token_events_map_from_and_to() -> None:
    ev = decode_event(EventTopic.TRANSFER, transfer(amount="42"))
    assert ev == TokenTransfer(sender=ALICE, recipient=BOB, amount=42)
    burn = decode_event(EventTopic.BURN, {"from": BOB, "amount": 3})
    assert burn == TokenBurned(sender=BOB, amount=3)


def test_decode_ignores_extra_fields() -> None:
    ev = decode_event(EventTopic.TRADE_EXECUTED, trade(memo="hello"))
    assert isinstance(ev, TradeExecuted)


def test_unknown_topic_keeps_raw_bytes() -> None:
    ev = decode_event(UnknownTopic("liquidate"), {"b": 2, "a": 1})
    assert ev == Unrecognized(topic_symbol="liquidate", raw_payload=b'{"a":1,"b":2}')


def test_decoding_is_pure() -> None:
    payload = trade()
    assert decode_event(EventTopic.TRADE_EXECUTED, payload) == decode_event(EventTopic.TRADE_EXECUTED, payload)
