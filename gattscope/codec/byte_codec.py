"""
Byte codec.

Transcodes between raw characteristic values (bytes) and the textual
representations a user picks in the UI: hex, UTF-8, Base64, bit strings and
fixed-width numbers (8/16/32-bit, signed/unsigned/float32, LE or BE).

Two decode granularities exist:
  decode      first slot only, for single-value read/write forms
  decode_all  every complete slot, space separated, for streamed values

Decoding never raises. When a value cannot be shown in the requested
format (e.g. two bytes read as uint32) the result falls back to hex and
carries a ``degraded`` reason, so callers can log it without losing data.
Encoding, on the other hand, fails fast with InvalidInput.
"""

import base64
import binascii
import logging
import math
import re
import struct
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from gattscope.codec.auto_format import (
    DEFAULT_TABLE,
    RULE_BOOL,
    RULE_BYTE,
    AutoFormatTable,
)
from gattscope.errors import InvalidInput

logger = logging.getLogger(__name__)


class Format(str, Enum):
    HEX = "hex"
    UTF8 = "utf8"
    BASE64 = "base64"
    BITS = "bits"
    UINT8 = "uint8"
    INT8 = "int8"
    UINT16LE = "uint16le"
    UINT16BE = "uint16be"
    INT16LE = "int16le"
    INT16BE = "int16be"
    UINT32LE = "uint32le"
    UINT32BE = "uint32be"
    INT32LE = "int32le"
    INT32BE = "int32be"
    FLOAT32LE = "float32le"
    FLOAT32BE = "float32be"
    AUTO = "auto"

    @classmethod
    def from_name(cls, name: Union[str, "Format", None]) -> "Format":
        """Accept UI spellings such as "UTF-8", "Uint16LE" or "hex"."""
        if isinstance(name, Format):
            return name
        if not name:
            return cls.HEX
        key = str(name).strip().lower().replace("-", "").replace("_", "")
        try:
            return cls(key)
        except ValueError:
            raise InvalidInput(f"Unknown format: {name!r}") from None


@dataclass(frozen=True)
class NumericLayout:
    code: str       # struct code of the decoded type
    width: int      # bytes per slot
    byteorder: str  # struct prefix: "<" or ">"

    @property
    def is_float(self) -> bool:
        return self.code == "f"

    @property
    def unsigned_code(self) -> str:
        return {1: "B", 2: "H", 4: "I"}[self.width]


NUMERIC_LAYOUTS: dict[Format, NumericLayout] = {
    Format.UINT8: NumericLayout("B", 1, "<"),
    Format.INT8: NumericLayout("b", 1, "<"),
    Format.UINT16LE: NumericLayout("H", 2, "<"),
    Format.UINT16BE: NumericLayout("H", 2, ">"),
    Format.INT16LE: NumericLayout("h", 2, "<"),
    Format.INT16BE: NumericLayout("h", 2, ">"),
    Format.UINT32LE: NumericLayout("I", 4, "<"),
    Format.UINT32BE: NumericLayout("I", 4, ">"),
    Format.INT32LE: NumericLayout("i", 4, "<"),
    Format.INT32BE: NumericLayout("i", 4, ">"),
    Format.FLOAT32LE: NumericLayout("f", 4, "<"),
    Format.FLOAT32BE: NumericLayout("f", 4, ">"),
}


@dataclass(frozen=True)
class DecodeResult:
    value: str
    degraded: Optional[str] = None

    @property
    def is_degraded(self) -> bool:
        return self.degraded is not None

    def __str__(self) -> str:
        return self.value


# ─── Helpers ───

_HEX_INPUT = re.compile(r"^\s*(?:(?:0x)?[0-9a-f]{2}\s*)+$", re.IGNORECASE)
_HEX_BYTE = re.compile(r"(?:0x)?([0-9a-f]{2})", re.IGNORECASE)
_BITS_TOKEN = re.compile(r"^[01]{8}$")


def to_hex(data: bytes) -> str:
    return bytes(data).hex(" ")


def to_bits(data: bytes) -> str:
    return " ".join(f"{b:08b}" for b in data)


def parse_hex(text: str) -> Optional[bytes]:
    """Return the bytes spelled by ``text`` or None if it is not hex input.

    Accepts "01 ff", "0x01,0xff", "01,ff" and "01ff".
    """
    normalized = text.replace(",", " ")
    if not _HEX_INPUT.match(normalized):
        return None
    return bytes(int(h, 16) for h in _HEX_BYTE.findall(normalized))


def parse_bits(text: str) -> bytes:
    tokens = text.split()
    if not tokens:
        raise InvalidInput("Bit string is empty")
    for token in tokens:
        if not _BITS_TOKEN.match(token):
            raise InvalidInput(f"Bit group must be exactly 8 binary digits: {token!r}")
    return bytes(int(token, 2) for token in tokens)


def parse_number(text: str) -> Union[int, float]:
    s = text.strip()
    if not s:
        raise InvalidInput("No number given")
    if "_" in s:
        # int() and float() accept digit separators, the UI's Number() does not
        raise InvalidInput(f"Not a number: {text!r}")
    try:
        return int(s, 0)
    except ValueError:
        pass
    try:
        value = float(s)
    except ValueError:
        raise InvalidInput(f"Not a number: {text!r}") from None
    if not math.isfinite(value):
        raise InvalidInput(f"Number is not finite: {text!r}")
    return value


def format_number(value: Union[int, float]) -> str:
    """Render numbers the way a browser prints them.

    Same shortest round-trip digits as ``repr``, laid out like JavaScript's
    ``Number.prototype.toString``: 1.0 -> "1", 1.5e-05 -> "0.000015",
    1e-07 -> "1e-7", 1e21 -> "1e+21".
    """
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = "".join(map(str, digit_tuple)).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = exponent + k  # decimal point position relative to the digits
    prefix = "-" if sign else ""

    if k <= n <= 21:
        return prefix + digits + "0" * (n - k)
    if 0 < n <= 21:
        return prefix + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return prefix + "0." + "0" * -n + digits
    mantissa = digits[0] + ("." + digits[1:] if k > 1 else "")
    return f"{prefix}{mantissa}e{'+' if n - 1 > 0 else '-'}{abs(n - 1)}"


def _identifier(hint) -> Optional[str]:
    if hint is None or isinstance(hint, str):
        return hint
    return getattr(hint, "characteristic", None)


def _degrade(data: bytes, reason: str) -> DecodeResult:
    logger.debug("Decode degraded to hex: %s", reason)
    return DecodeResult(to_hex(data), degraded=reason)


# ─── Decode ───

def _decode_numeric(data: bytes, layout: NumericLayout, every_slot: bool) -> DecodeResult:
    count = len(data) // layout.width
    if count == 0:
        return _degrade(
            data, f"need {layout.width} bytes for {layout.code!r}, got {len(data)}"
        )
    if not every_slot:
        count = 1
    values = struct.unpack_from(f"{layout.byteorder}{count}{layout.code}", data, 0)
    return DecodeResult(" ".join(format_number(v) for v in values))


def _decode_auto(
    data: bytes, hint, table: AutoFormatTable, every_slot: bool
) -> DecodeResult:
    rule = table.rule_for(_identifier(hint))
    if rule in (RULE_BOOL, RULE_BYTE):
        if not data:
            return _degrade(data, f"auto rule {rule!r} needs at least one byte")
        if rule == RULE_BOOL:
            return DecodeResult("1" if data[0] else "0")
        return DecodeResult(str(data[0]))
    return _decode(data, Format(rule), hint, table, every_slot)


def _decode(
    data: bytes, fmt: Format, hint, table: AutoFormatTable, every_slot: bool
) -> DecodeResult:
    data = bytes(data)
    if fmt is Format.HEX:
        return DecodeResult(to_hex(data))
    if fmt is Format.UTF8:
        return DecodeResult(data.decode("utf-8", errors="replace"))
    if fmt is Format.BASE64:
        return DecodeResult(base64.b64encode(data).decode("ascii"))
    if fmt is Format.BITS:
        return DecodeResult(to_bits(data))
    if fmt is Format.AUTO:
        return _decode_auto(data, hint, table, every_slot)
    return _decode_numeric(data, NUMERIC_LAYOUTS[fmt], every_slot)


def decode_result(
    data: bytes,
    fmt: Union[Format, str],
    hint=None,
    table: AutoFormatTable = DEFAULT_TABLE,
) -> DecodeResult:
    """Decode the first slot of ``data``.

    ``hint`` is the target characteristic (a CharacteristicRef or a UUID
    string) and is only consulted for Format.AUTO.
    """
    return _decode(data, Format.from_name(fmt), hint, table, every_slot=False)


def decode_all_result(
    data: bytes,
    fmt: Union[Format, str],
    hint=None,
    table: AutoFormatTable = DEFAULT_TABLE,
) -> DecodeResult:
    """Decode every complete slot of ``data``; a trailing partial slot is dropped."""
    return _decode(data, Format.from_name(fmt), hint, table, every_slot=True)


def decode(data: bytes, fmt, hint=None, table: AutoFormatTable = DEFAULT_TABLE) -> str:
    return decode_result(data, fmt, hint, table).value


def decode_all(data: bytes, fmt, hint=None, table: AutoFormatTable = DEFAULT_TABLE) -> str:
    return decode_all_result(data, fmt, hint, table).value


# ─── Encode ───

def _encode_numeric(text: str, layout: NumericLayout) -> bytes:
    value = parse_number(text)
    if layout.is_float:
        try:
            return struct.pack(f"{layout.byteorder}f", float(value))
        except OverflowError:
            # float32 stores round out-of-range finite values to infinity
            return struct.pack(f"{layout.byteorder}f", math.copysign(math.inf, value))
    # typed-array store semantics: truncate, then wrap to the slot width
    wrapped = int(value) % (1 << (8 * layout.width))
    return struct.pack(f"{layout.byteorder}{layout.unsigned_code}", wrapped)


def encode(text: str, fmt: Union[Format, str]) -> bytes:
    """Encode user text into a fresh byte buffer. Raises InvalidInput."""
    fmt = Format.from_name(fmt)
    if fmt is Format.HEX:
        parsed = parse_hex(text)
        if parsed is not None:
            return parsed
        return text.encode("utf-8")
    if fmt is Format.UTF8:
        return text.encode("utf-8")
    if fmt is Format.BASE64:
        try:
            return base64.b64decode(text.strip(), validate=True)
        except (binascii.Error, ValueError):
            raise InvalidInput(f"Invalid Base64: {text!r}") from None
    if fmt is Format.BITS:
        return parse_bits(text)
    if fmt is Format.AUTO:
        raise InvalidInput("Auto format is decode-only")
    return _encode_numeric(text, NUMERIC_LAYOUTS[fmt])
