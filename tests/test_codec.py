"""Validation, wire encoding and decoding of ABI values."""

from __future__ import annotations

import pytest
from eth_abi import encode as abi_encode
from eth_utils import keccak

from evmdeck.core import codec
from evmdeck.core.abi_types import Address, Array, Bool, Bytes, FixedArray, FixedBytes, Int, Param, String, Tuple, TupleField, Uint
from evmdeck.core.contract_manager import ErrorDescriptor, EventDescriptor
from evmdeck.core.errors import (
    BAD_CHECKSUM,
    COUNT_MISMATCH,
    INVALID_FORMAT,
    MISSING_FIELD,
    OUT_OF_RANGE,
    TRUNCATED,
    WRONG_LENGTH,
    DecodeError,
    EncodeError,
    FormValidationError,
    ValidationError,
)

CHECKSUMMED = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def _reason(abi_type, raw) -> str:
    with pytest.raises(ValidationError) as excinfo:
        codec.encode(abi_type, raw)
    return excinfo.value.reason


def test_uint_bounds() -> None:
    assert codec.encode(Uint(8), "255").data == 255
    assert _reason(Uint(8), "256") == OUT_OF_RANGE
    assert _reason(Uint(256), "-1") == INVALID_FORMAT
    assert _reason(Uint(256), "1e3") == INVALID_FORMAT


def test_int_bounds() -> None:
    assert codec.encode(Int(8), "-128").data == -128
    assert _reason(Int(8), "-129") == OUT_OF_RANGE
    assert _reason(Int(8), "128") == OUT_OF_RANGE


def test_bool_is_not_coerced() -> None:
    assert codec.encode(Bool(), "true").data is True
    assert codec.encode(Bool(), " false ").data is False
    assert _reason(Bool(), "True") == INVALID_FORMAT
    assert _reason(Bool(), "1") == INVALID_FORMAT


def test_address_validation() -> None:
    assert codec.encode(Address(), CHECKSUMMED.lower()).data == CHECKSUMMED
    assert _reason(Address(), "0x" + "a" * 39) == WRONG_LENGTH
    assert _reason(Address(), "5aaeb6053f3e94c9b9a09f33669435e7ef1beaed") == INVALID_FORMAT
    assert _reason(Address(), "0x5aaeb6053F3E94C9b9A09f33669435E7Ef1BeAed") == BAD_CHECKSUM
    relaxed = codec.encode(Address(), "0x5aaeb6053F3E94C9b9A09f33669435E7Ef1BeAed", checksum=False)
    assert relaxed.data == CHECKSUMMED


def test_bytes_lengths() -> None:
    assert codec.encode(FixedBytes(2), "0xbeef").data == b"\xbe\xef"
    assert _reason(FixedBytes(2), "0xbe") == WRONG_LENGTH
    assert _reason(Bytes(), "0xabc") == WRONG_LENGTH
    assert _reason(Bytes(), "0xzz") == INVALID_FORMAT
    assert codec.encode(Bytes(), "0x").data == b""


def test_string_kept_verbatim() -> None:
    assert codec.encode(String(), "  hello, world ").data == "  hello, world "


def test_dynamic_array_reports_failing_index() -> None:
    value = codec.encode(Array(Uint(256)), "1,2,3,100")
    assert [item.data for item in value.data] == [1, 2, 3, 100]

    with pytest.raises(ValidationError) as excinfo:
        codec.encode(Array(Uint(256)), "1,2,abc")
    assert excinfo.value.index == 2
    assert excinfo.value.reason == INVALID_FORMAT


def test_array_accepts_brackets_and_quoted_strings() -> None:
    assert [item.data for item in codec.encode(Array(Uint(8)), "[1, 2]").data] == [1, 2]
    strings = codec.encode(Array(String()), '["a", "b,c"]')
    assert [item.data for item in strings.data] == ["a", "b,c"]
    assert codec.encode(Array(Uint(8)), "[]").data == ()


def test_fixed_array_counts_elements() -> None:
    assert _reason(FixedArray(Uint(8), 3), "1,2") == COUNT_MISMATCH


def test_tuple_from_text_and_mapping() -> None:
    pair = Tuple((TupleField("who", Address()), TupleField("amount", Uint(256))))
    from_text = codec.encode(pair, f"({CHECKSUMMED}, 5)")
    from_mapping = codec.encode(pair, {"who": CHECKSUMMED, "amount": "5"})
    assert from_text == from_mapping

    with pytest.raises(ValidationError) as excinfo:
        codec.encode(pair, {"who": CHECKSUMMED})
    assert excinfo.value.reason == MISSING_FIELD
    assert excinfo.value.path == ("amount",)


def test_encode_arguments_collects_every_field_error() -> None:
    params = (
        Param("to", Address()),
        Param("amounts", Array(Uint(256))),
        Param("memo", String()),
        Param("flag", Bool()),
    )
    with pytest.raises(FormValidationError) as excinfo:
        codec.encode_arguments(params, ["0x123", "1,2,abc", "ok"])
    errors = excinfo.value.errors
    assert sorted(errors) == [0, 1, 3]
    assert errors[0].reason == WRONG_LENGTH
    assert errors[1].index == 2
    assert errors[3].reason == MISSING_FIELD


def test_values_survive_the_wire() -> None:
    types = [Uint(256), Array(String()), Tuple((TupleField("a", Address()), TupleField("b", Bytes())))]
    values = [
        codec.encode(types[0], "42"),
        codec.encode(types[1], '["x", "y"]'),
        codec.encode(types[2], f"({CHECKSUMMED}, 0x00ff)"),
    ]
    assert codec.decode_values(types, codec.encode_values(types, values)) == tuple(values)


def test_encode_values_checks_types() -> None:
    with pytest.raises(EncodeError):
        codec.encode_values([Uint(8)], [codec.encode(Uint(16), "1")])
    with pytest.raises(EncodeError):
        codec.encode_values([Uint(8), Uint(8)], [codec.encode(Uint(8), "1")])


def test_decode_truncated_data() -> None:
    with pytest.raises(DecodeError) as excinfo:
        codec.decode(Uint(256), b"\x00" * 10)
    assert excinfo.value.reason == TRUNCATED


def test_selector_matches_keccak() -> None:
    params = (Param("to", Address()), Param("amount", Uint(256)))
    assert codec.selector("transfer", params).hex() == "a9059cbb"


def test_render_and_format_units() -> None:
    assert codec.render(codec.encode(String(), 'say "hi"')) == '"say \\"hi\\""'
    assert codec.render(codec.encode(Array(Bool()), "true,false")) == "[true, false]"
    assert codec.format_units(1_500_000_000_000_000_000, 18) == "1.5"
    assert codec.format_units(10**18, 18) == "1"
    assert codec.format_units(-5, 2) == "-0.05"
    assert codec.humanize(codec.encode(Uint(256), "2500"), 3) == "2.5"
    assert codec.humanize(codec.encode(Bool(), "true"), 3) is None


def _incremented() -> EventDescriptor:
    return EventDescriptor("Incremented", (Param("newCount", Uint(256)),))


def test_decode_known_log() -> None:
    event = _incremented()
    raw = {
        "address": CHECKSUMMED.lower(),
        "topics": ["0x" + keccak(text="Incremented(uint256)").hex()],
        "data": "0x" + (43).to_bytes(32, "big").hex(),
    }
    log = codec.decode_log(raw, [event])
    assert log.decoded
    assert log.address == CHECKSUMMED
    assert log.field("newCount").data == 43
    assert log.describe() == "Incremented(newCount: 43)"


def test_decode_indexed_and_unknown_logs() -> None:
    transfer = EventDescriptor(
        "Transfer",
        (Param("from", Address(), indexed=True), Param("to", Address(), indexed=True), Param("value", Uint(256))),
    )
    sender = "0x" + "00" * 12 + "11" * 20
    receiver = "0x" + "00" * 12 + "22" * 20
    raw = {
        "address": CHECKSUMMED,
        "topics": ["0x" + transfer.topic.hex(), sender, receiver],
        "data": "0x" + (7).to_bytes(32, "big").hex(),
    }
    log = codec.decode_log(raw, [transfer])
    assert log.field("from").data == "0x" + "11" * 20
    assert log.field("value").data == 7

    unknown = codec.decode_log({"topics": ["0x" + "ab" * 32], "data": "0x"}, [transfer])
    assert not unknown.decoded
    assert unknown.describe().startswith("[0xabab")


def test_decode_revert_variants() -> None:
    too_large = ErrorDescriptor("TooLarge", (Param("limit", Uint(256)),))
    assert codec.decode_revert(None) == "execution reverted"
    assert codec.decode_revert(b"") == "execution reverted"
    assert codec.decode_revert(codec.ERROR_SELECTOR + abi_encode(["string"], ["nope"])) == "nope"
    assert (
        codec.decode_revert(codec.PANIC_SELECTOR + abi_encode(["uint256"], [0x11]))
        == "Panic(0x11): arithmetic underflow or overflow"
    )
    custom = too_large.selector + abi_encode(["uint256"], [10])
    assert codec.decode_revert(custom, [too_large]) == "TooLarge(limit: 10)"
    assert codec.decode_revert(b"\xde\xad\xbe\xef") == "0xdeadbeef"
