"""
Byte codec: hex/UTF-8/Base64/bits, fixed-width numbers, auto format,
and the degrade-to-hex decode policy.
"""

import math

import pytest

from gattscope.acquisition.refs import CharacteristicRef
from gattscope.codec.auto_format import AutoFormatTable
from gattscope.codec.byte_codec import (
    NUMERIC_LAYOUTS,
    Format,
    decode,
    decode_all,
    decode_all_result,
    decode_result,
    encode,
    format_number,
)
from gattscope.errors import InvalidInput


# ─── Hex ───

def test_hex_decode_is_lowercase_space_separated():
    assert decode(bytes([0x01, 0xAB, 0xFF]), Format.HEX) == "01 ab ff"


def test_hex_decode_empty_buffer():
    assert decode(b"", Format.HEX) == ""


@pytest.mark.parametrize("text", ["01 ab ff", "0x01 0xAB 0xff", "01,ab,ff", "0x01, 0xab, 0xff", "01abff"])
def test_hex_encode_accepts_prefixes_and_separators(text):
    assert encode(text, Format.HEX) == bytes([0x01, 0xAB, 0xFF])


def test_hex_encode_falls_back_to_utf8():
    assert encode("hello", Format.HEX) == b"hello"
    assert encode("abc", Format.HEX) == b"abc"


@pytest.mark.parametrize("data", [b"", b"\x00", bytes(range(256)), b"\x10\x20\x30"])
def test_hex_round_trip(data):
    assert encode(decode(data, Format.HEX), Format.HEX) == data


# ─── UTF-8 ───

def test_utf8_round_trip():
    text = "température 25°C"
    assert decode(encode(text, Format.UTF8), Format.UTF8) == text


def test_utf8_decode_replaces_invalid_bytes():
    assert decode(b"ok\xff", Format.UTF8) == "ok�"


# ─── Base64 ───

def test_base64_decode():
    assert decode(b"hello", Format.BASE64) == "aGVsbG8="


def test_base64_encode_rejects_invalid_text():
    with pytest.raises(InvalidInput):
        encode("not-base64!!", Format.BASE64)


def test_base64_round_trip():
    data = bytes([0, 1, 2, 250, 251, 252])
    assert encode(decode(data, Format.BASE64), Format.BASE64) == data


# ─── Bits ───

def test_bits_decode_zero_pads():
    assert decode(bytes([1, 0x80]), Format.BITS) == "00000001 10000000"


def test_bits_encode_accepts_eight_digit_groups():
    assert encode("00000001", Format.BITS) == b"\x01"
    assert encode("00000001 11111111", Format.BITS) == b"\x01\xff"


@pytest.mark.parametrize("text", ["101", "", "000000012", "0000000 1"])
def test_bits_encode_rejects_malformed_groups(text):
    with pytest.raises(InvalidInput):
        encode(text, Format.BITS)


# ─── Numbers ───

def test_single_slot_decode_reads_first_slot_only():
    data = bytes([0x01, 0x00, 0x02, 0x00])
    assert decode(data, Format.UINT16LE) == "1"
    assert decode(data, Format.UINT16BE) == "256"


def test_decode_all_reads_every_complete_slot():
    data = bytes([0x01, 0x00, 0x02, 0x00, 0x03])
    assert decode_all(data, Format.UINT16LE) == "1 2"


@pytest.mark.parametrize("fmt", list(NUMERIC_LAYOUTS))
def test_decode_all_slot_count(fmt):
    width = NUMERIC_LAYOUTS[fmt].width
    data = bytes(range(3 * width))
    assert len(decode_all(data, fmt).split(" ")) == 3


def test_signed_formats():
    assert decode(b"\xff", Format.INT8) == "-1"
    assert decode(b"\xff", Format.UINT8) == "255"
    assert decode(b"\xfe\xff", Format.INT16LE) == "-2"
    assert decode(b"\xff\xff\xff\xfe", Format.INT32BE) == "-2"


def test_float32_decode():
    assert decode(encode("1.5", Format.FLOAT32BE), Format.FLOAT32BE) == "1.5"
    assert decode(bytes([0x00, 0x00, 0x80, 0x3F]), Format.FLOAT32LE) == "1"


@pytest.mark.parametrize(
    "fmt,values",
    [
        (Format.UINT8, [0, 1, 255]),
        (Format.INT8, [-128, -1, 0, 127]),
        (Format.UINT16LE, [0, 513, 65535]),
        (Format.UINT16BE, [0, 513, 65535]),
        (Format.INT16LE, [-32768, -2, 32767]),
        (Format.INT16BE, [-32768, -2, 32767]),
        (Format.UINT32LE, [0, 16909060, 4294967295]),
        (Format.UINT32BE, [0, 16909060, 4294967295]),
        (Format.INT32LE, [-2147483648, -5, 2147483647]),
        (Format.INT32BE, [-2147483648, -5, 2147483647]),
    ],
)
def test_integer_round_trip(fmt, values):
    for v in values:
        assert int(decode(encode(str(v), fmt), fmt)) == v


@pytest.mark.parametrize("fmt", [Format.FLOAT32LE, Format.FLOAT32BE])
@pytest.mark.parametrize("v", [0.0, -2.5, 3.14159, 1e-3, 12345.678])
def test_float_round_trip(fmt, v):
    assert float(decode(encode(str(v), fmt), fmt)) == pytest.approx(v, rel=1e-6)


def test_numeric_encode_endianness():
    assert encode("258", Format.UINT16LE) == b"\x02\x01"
    assert encode("258", Format.UINT16BE) == b"\x01\x02"
    assert encode("0x0102", Format.UINT16BE) == b"\x01\x02"


def test_numeric_encode_wraps_and_truncates():
    assert encode("256", Format.UINT8) == b"\x00"
    assert encode("-1", Format.UINT16LE) == b"\xff\xff"
    assert encode("3.9", Format.INT8) == b"\x03"


@pytest.mark.parametrize("text", ["abc", "", "inf", "nan", "1e400"])
def test_numeric_encode_rejects_non_finite_or_non_numeric(text):
    with pytest.raises(InvalidInput):
        encode(text, Format.INT32LE)


@pytest.mark.parametrize("text", ["1_000", "0x_ff", "1_0.5"])
def test_numeric_encode_rejects_digit_separators(text):
    with pytest.raises(InvalidInput):
        encode(text, Format.UINT16LE)


@pytest.mark.parametrize(
    "text,fmt,expected",
    [
        ("1e39", Format.FLOAT32LE, b"\x00\x00\x80\x7f"),
        ("-1e39", Format.FLOAT32BE, b"\xff\x80\x00\x00"),
    ],
)
def test_float32_encode_rounds_huge_finite_values_to_infinity(text, fmt, expected):
    assert encode(text, fmt) == expected
    assert decode(expected, fmt) == ("Infinity" if text[0] != "-" else "-Infinity")


@pytest.mark.parametrize(
    "value,expected",
    [
        (2.0, "2"),
        (0.5, "0.5"),
        (-2.5, "-2.5"),
        (123.456, "123.456"),
        (0.0, "0"),
        (-0.0, "0"),
        (1.5e-05, "0.000015"),
        (1e-06, "0.000001"),
        (1e-07, "1e-7"),
        (1.25e-10, "1.25e-10"),
        (1e20, "100000000000000000000"),
        (1e21, "1e+21"),
        (1.5e300, "1.5e+300"),
        (float("nan"), "NaN"),
        (-math.inf, "-Infinity"),
        (7, "7"),
    ],
)
def test_format_number_matches_browser_rendering(value, expected):
    assert format_number(value) == expected


# ─── Degrade to hex ───

def test_short_buffer_degrades_to_hex():
    result = decode_result(b"\x01\x02", Format.UINT32LE)
    assert result.value == "01 02"
    assert result.is_degraded
    assert decode_all_result(b"\x01", Format.FLOAT32BE).value == "01"


def test_clean_decode_is_not_degraded():
    assert not decode_result(b"\x01", Format.UINT8).is_degraded


# ─── Auto ───

def _char(short: str) -> CharacteristicRef:
    return CharacteristicRef.parse("0xffe0", short)


def test_auto_by_characteristic():
    assert decode(b"\x01", Format.AUTO, _char("0xffe0")) == "1"
    assert decode(b"\x01", Format.AUTO, _char("0xffe1")) == "1"
    assert decode(b"\x01", Format.AUTO, _char("0xffe3")) == "01"


def test_auto_bool_and_byte_rules():
    assert decode(b"\x00", Format.AUTO, _char("0xffe0")) == "0"
    assert decode(b"\x07\x09", Format.AUTO, _char("0xffe0")) == "1"
    assert decode(b"\xc8\x01", Format.AUTO, _char("0xffe1")) == "200"


def test_auto_matches_case_insensitively_on_plain_strings():
    assert decode(b"\x05", Format.AUTO, "0000FFE1-0000-1000-8000-00805F9B34FB") == "5"


def test_auto_falls_back_to_hex():
    assert decode(b"\x01\x02", Format.AUTO, _char("0x2a19")) == "01 02"
    assert decode(b"\x01\x02", Format.AUTO) == "01 02"


def test_auto_empty_buffer_degrades():
    result = decode_result(b"", Format.AUTO, _char("0xffe0"))
    assert result.is_degraded
    assert result.value == ""


def test_auto_custom_table():
    table = AutoFormatTable.parse("2a19=uint8, abcd=uint16le")
    assert decode(b"\x64", Format.AUTO, _char("0x2a19"), table) == "100"
    assert decode_all(b"\x01\x00\x02\x00", Format.AUTO, _char("0xabcd"), table) == "1 2"
    # default roles no longer apply
    assert decode(b"\x01", Format.AUTO, _char("0xffe0"), table) == "01"


@pytest.mark.parametrize("entry", ["ffe0", "ffe0=nope", "ffe0=auto", "=hex"])
def test_auto_table_rejects_bad_entries(entry):
    with pytest.raises(InvalidInput):
        AutoFormatTable.parse(entry)


def test_auto_is_decode_only():
    with pytest.raises(InvalidInput):
        encode("01", Format.AUTO)


# ─── Format names ───

@pytest.mark.parametrize(
    "name,fmt",
    [("UTF-8", Format.UTF8), ("Uint16LE", Format.UINT16LE), ("hex", Format.HEX), (None, Format.HEX)],
)
def test_format_from_name(name, fmt):
    assert Format.from_name(name) is fmt


def test_format_from_unknown_name():
    with pytest.raises(InvalidInput):
        Format.from_name("int64le")
