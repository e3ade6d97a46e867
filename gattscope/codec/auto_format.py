"""
Auto-format lookup table.

The target firmware gives the 0xFFE0/0xFFE1/0xFFE3 characteristics fixed
meanings without publishing a presentation descriptor, so "Auto" decoding
is a guess keyed on the characteristic identifier. The guess lives in an
ordered substring table that deployments can replace through config.

Rules:
  bool   byte 0 rendered as 0/1
  byte   byte 0 rendered as an unsigned integer
  <fmt>  any concrete format name, e.g. "hex" or "uint16le"
"""

from dataclasses import dataclass
from typing import Optional

from gattscope.errors import InvalidInput

RULE_BOOL = "bool"
RULE_BYTE = "byte"
FALLBACK_RULE = "hex"


@dataclass(frozen=True)
class AutoFormatTable:
    entries: tuple[tuple[str, str], ...]

    @classmethod
    def parse(cls, text: str) -> "AutoFormatTable":
        """Parse ``"ffe0=bool,ffe1=byte"`` into an ordered table."""
        # byte_codec imports this module at load time
        from gattscope.codec.byte_codec import Format

        entries = []
        for item in text.split(","):
            item = item.strip()
            if not item:
                continue
            key, sep, rule = item.partition("=")
            key, rule = key.strip().lower(), rule.strip().lower()
            if not sep or not key or not rule:
                raise InvalidInput(f"Bad auto-format entry: {item!r}")
            if rule not in (RULE_BOOL, RULE_BYTE):
                try:
                    fmt = Format(rule)
                except ValueError:
                    raise InvalidInput(f"Unknown auto-format rule: {rule!r}") from None
                if fmt is Format.AUTO:
                    raise InvalidInput("An auto-format rule cannot be 'auto'")
            entries.append((key, rule))
        return cls(tuple(entries))

    def rule_for(self, identifier: Optional[str]) -> str:
        if not identifier:
            return FALLBACK_RULE
        ident = identifier.lower()
        for key, rule in self.entries:
            if key in ident:
                return rule
        return FALLBACK_RULE


DEFAULT_TABLE = AutoFormatTable(
    (("ffe0", RULE_BOOL), ("ffe1", RULE_BYTE), ("ffe3", "hex"))
)
