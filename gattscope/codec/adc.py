"""
ADC frame decoder for the 0xFFE3 characteristic.

Frame layout (8 bytes, anything after offset 7 is ignored):
  bytes 0-1: channel 1 raw reading (uint16 BE)
  bytes 2-3: channel 2
  bytes 4-5: channel 3
  bytes 6-7: channel 4

Readings come from a 12-bit converter on a 3.3 V reference.
"""

import struct
from dataclasses import dataclass
from typing import Optional

ADC_MARKER = "ffe3"
ADC_FRAME_SIZE = 8
ADC_CHANNELS = 4
ADC_FULL_SCALE = 4095.0
ADC_VREF = 3.3


@dataclass(frozen=True)
class ChannelReading:
    channel: int     # 1..4
    raw_value: int   # 0..65535
    voltage: float
    percentage: float

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "raw_value": self.raw_value,
            "voltage": round(self.voltage, 4),
            "percentage": round(self.percentage, 2),
        }


def is_adc_target(ref) -> bool:
    return any(
        ADC_MARKER in (uuid or "").lower()
        for uuid in (ref.service, ref.characteristic)
    )


def try_decode_adc(data: bytes, ref) -> Optional[list[ChannelReading]]:
    """Decode a 4-channel ADC frame, or return None if ``data`` is not one."""
    if ref is None or not is_adc_target(ref) or len(data) < ADC_FRAME_SIZE:
        return None

    raw = struct.unpack_from(f">{ADC_CHANNELS}H", bytes(data), 0)
    return [
        ChannelReading(
            channel=i + 1,
            raw_value=value,
            voltage=value / ADC_FULL_SCALE * ADC_VREF,
            percentage=value / ADC_FULL_SCALE * 100,
        )
        for i, value in enumerate(raw)
    ]
