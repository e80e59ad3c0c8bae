from __future__ import annotations

import pytest

from poke.abi_codec import (
    AbiParam,
    decode_abi,
    decode_log,
    encode_abi,
    encode_call,
    event_topic0,
    function_selector,
    parse_type,
)
from poke.transforms import (
    keccak256,
    parse_quantity,
    scale_decimal,
    to_checksum_address,
    unscale_integer,
)

from ._poke_helpers import HOLDER, _pad_address, _word


def test_keccak_empty_input():
    assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


def test_checksum_address_matches_eip55_vectors():
    for expected in (
        "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359",
        "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB",
    ):
        assert to_checksum_address(expected.lower()) == expected
        assert to_checksum_address(bytes.fromhex(expected[2:])) == expected


def test_scale_decimal_fixed_point():
    assert scale_decimal("1.5") == 1_500_000_000_000_000_000
    assert scale_decimal("0.000000000000000001") == 1
    assert scale_decimal("1e-18") == 1
    assert scale_decimal("-2") == -2 * 10**18
    assert scale_decimal("2.5", 9) == 2_500_000_000


def test_scale_decimal_truncates_toward_zero():
    assert scale_decimal("0.0000000000000000019") == 1
    assert scale_decimal("-0.0000000000000000019") == -1
    assert scale_decimal("0.0000000000000000009") == 0


def test_scale_decimal_int_marker_skips_scaling():
    assert scale_decimal("int:15") == 15
    assert scale_decimal("int:1e3") == 1000


@pytest.mark.parametrize("text", ["", "abc", "1.2.3", "nan", "inf", "int:"])
def test_scale_decimal_rejects_malformed(text):
    with pytest.raises(ValueError):
        scale_decimal(text)


def test_unscale_integer_round_trip():
    for text in ("0", "1", "1.5", "123.000000000000000001", "-7.25"):
        assert unscale_integer(scale_decimal(text)) == text
    assert unscale_integer(scale_decimal("2.50")) == "2.5"


def test_parse_quantity():
    assert parse_quantity("0x2a") == 42
    assert parse_quantity(7) == 7
    with pytest.raises(ValueError):
        parse_quantity("42")
    with pytest.raises(ValueError):
        parse_quantity(True)


def test_selectors_and_topics():
    assert function_selector("transfer(address,uint256)").hex() == "a9059cbb"
    assert (
        event_topic0("Transfer(address,address,uint256)")
        == "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
    )


def test_parse_type_rejects_arrays_and_tuples():
    with pytest.raises(ValueError):
        parse_type("uint256[]")
    with pytest.raises(ValueError):
        parse_type("(uint256,bool)")


def test_encode_call_and_decode_dynamic():
    data = encode_call("transfer(address,uint256)", ["address", "uint256"], [HOLDER, 5])
    assert data[:4].hex() == "a9059cbb"
    assert data[4:].hex() == _pad_address(HOLDER)[2:] + _word(5)

    encoded = encode_abi(["string", "uint8", "bool"], ["hello", 3, True])
    assert decode_abi(["string", "uint8", "bool"], encoded) == ["hello", 3, True]


def test_decode_abi_rejects_short_data():
    with pytest.raises(ValueError):
        decode_abi(["uint256"], b"\x01")


def test_decode_log_indexed_and_data_fields():
    params = [
        AbiParam(name="who", type="address", indexed=True),
        AbiParam(name="note", type="string", indexed=True),
        AbiParam(name="value", type="uint256"),
    ]
    note_topic = "0x" + keccak256(b"memo").hex()
    fields = decode_log(
        name="Noted",
        params=params,
        topics=[event_topic0("Noted(address,string,uint256)"), _pad_address(HOLDER), note_topic],
        data=bytes.fromhex(_word(42)),
    )
    assert [(p.name, v) for p, v in fields] == [
        ("who", to_checksum_address(HOLDER)),
        ("note", keccak256(b"memo")),
        ("value", 42),
    ]


def test_decode_log_topic_mismatch():
    with pytest.raises(ValueError, match="topic0"):
        decode_log(
            name="Stored",
            params=[AbiParam(name="value", type="uint256")],
            topics=["0x" + "00" * 32],
            data=bytes.fromhex(_word(1)),
        )
