"""
In-memory sample series.

Holds the samples collected during this process's lifetime (polls and
notifications) and renders them for the chart and CSV consumers. Nothing
is written to disk; the series is emptied only by an explicit clear.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import numpy as np

from gattscope.codec.adc import ADC_CHANNELS, ChannelReading

logger = logging.getLogger(__name__)

CSV_HEADER = "timestamp,value,hex," + ",".join(
    f"ADC_CH{i}" for i in range(1, ADC_CHANNELS + 1)
)


def iso_timestamp(ts: float) -> str:
    """2024-05-01T12:00:00.123Z"""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _csv_quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


@dataclass
class Sample:
    timestamp: float
    decoded_value: str
    raw_hex: str
    raw_bytes: bytes
    adc_channels: Optional[list[ChannelReading]] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "time": iso_timestamp(self.timestamp),
            "value": self.decoded_value,
            "hex": self.raw_hex,
            "adc": [c.to_dict() for c in self.adc_channels] if self.adc_channels else None,
        }

    def to_csv_row(self) -> str:
        if self.adc_channels:
            adc = [f"{c.voltage:.3f}" for c in self.adc_channels]
        else:
            adc = [""] * ADC_CHANNELS
        return ",".join(
            [iso_timestamp(self.timestamp), _csv_quote(self.decoded_value), self.raw_hex]
            + adc
        )


def _leading_number(text: str) -> float:
    token = text.split(" ", 1)[0] if text else ""
    try:
        return float(token)
    except ValueError:
        return float("nan")


def _nan_to_none(values: np.ndarray) -> list:
    return [None if np.isnan(v) else float(v) for v in values]


class SampleSeries:
    def __init__(self):
        self._samples: list[Sample] = []
        self._on_append: Optional[Callable[[Sample], None]] = None

    def on_append(self, callback: Callable[[Sample], None]):
        self._on_append = callback

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> list[Sample]:
        return list(self._samples)

    def append(self, sample: Sample):
        self._samples.append(sample)
        if self._on_append:
            self._on_append(sample)

    def clear(self) -> int:
        count = len(self._samples)
        self._samples = []
        logger.info("Cleared %d sample(s)", count)
        return count

    def since(self, index: int) -> list[Sample]:
        return self._samples[max(index, 0):]

    # ─── Export ───

    def to_csv(self) -> str:
        rows = [CSV_HEADER] + [s.to_csv_row() for s in self._samples]
        logger.info("Exported CSV (%d rows)", len(self._samples))
        return "\n".join(rows) + "\n"

    def chart(self) -> dict:
        """Numeric projection for live charts.

        ``values`` is the first number of each decoded value (None when the
        value is not numeric); ``adc_voltage`` is one list per channel.
        """
        samples = self.samples
        timestamps = np.array([s.timestamp for s in samples], dtype=np.float64)
        values = np.array([_leading_number(s.decoded_value) for s in samples], dtype=np.float64)

        adc = np.full((len(samples), ADC_CHANNELS), np.nan)
        for row, s in enumerate(samples):
            if s.adc_channels:
                adc[row, :] = [c.voltage for c in s.adc_channels]

        finite = values[~np.isnan(values)]
        stats = None
        if finite.size:
            stats = {
                "min": float(finite.min()),
                "max": float(finite.max()),
                "mean": float(finite.mean()),
                "count": int(finite.size),
            }

        return {
            "timestamps": timestamps.tolist(),
            "values": _nan_to_none(values),
            "adc_voltage": [_nan_to_none(adc[:, ch]) for ch in range(ADC_CHANNELS)],
            "stats": stats,
        }
