"""
GATT identifiers.

Users type UUIDs as full 128-bit strings, short hex strings ("ffe1") or
16-bit shorthands ("0xffe1"). Everything is normalized to the lowercase
128-bit form so refs compare equal regardless of how they were typed.
"""

from dataclasses import dataclass
from typing import Union

from bleak.uuids import normalize_uuid_16, normalize_uuid_32, normalize_uuid_str

from gattscope.errors import InvalidInput

UuidLike = Union[str, int]


def normalize_uuid(value: UuidLike) -> str:
    if isinstance(value, int):
        if value < 0 or value > 0xFFFFFFFF:
            raise InvalidInput(f"UUID shorthand out of range: {value:#x}")
        return normalize_uuid_16(value) if value <= 0xFFFF else normalize_uuid_32(value)

    text = str(value).strip()
    if not text:
        raise InvalidInput("Empty UUID")
    if text.lower().startswith("0x"):
        try:
            return normalize_uuid(int(text, 16))
        except ValueError:
            raise InvalidInput(f"Invalid UUID shorthand: {text!r}") from None
    try:
        return normalize_uuid_str(text)
    except ValueError:
        raise InvalidInput(f"Invalid UUID: {text!r}") from None


@dataclass(frozen=True)
class CharacteristicRef:
    service: str
    characteristic: str

    @classmethod
    def parse(cls, service: UuidLike, characteristic: UuidLike) -> "CharacteristicRef":
        return cls(normalize_uuid(service), normalize_uuid(characteristic))

    def to_dict(self) -> dict:
        return {"service": self.service, "characteristic": self.characteristic}

    def __str__(self) -> str:
        return f"{self.service}/{self.characteristic}"
