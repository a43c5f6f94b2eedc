"""
Sensor Event Types

One SensorEvent is produced per valid ThinkGear packet. It aggregates the
variant parts found in that packet: a RawBatch (0x80 rows), an
EightBandPowers block (0x83) and/or ESenseValues (0x02 / 0x04 / 0x05 / 0x16).
Consumers dispatch on the parts that are present.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Mapping, Union

from aura_eeg.protocol.constants import ASIC_BAND_ORDER


@dataclass(frozen=True)
class RawBatch:
    """Signed 16-bit raw samples in arrival order."""

    samples: tuple[int, ...]

    def __len__(self) -> int:
        return len(self.samples)


@dataclass(frozen=True)
class EightBandPowers:
    """
    Vendor-computed band powers from a 0x83 block.

    Attributes
    ----------
    bands : Mapping[str, int]
        Canonical band name -> unsigned 32-bit power (24 bits on the wire).
    """

    bands: Mapping[str, int]

    def ordered(self) -> list[int]:
        """Values in canonical band order."""
        return [int(self.bands[name]) for name in ASIC_BAND_ORDER]


@dataclass(frozen=True)
class ESenseValues:
    """Optional eSense scalars; quality is 0 (best) .. 200 (no contact)."""

    attention: int | None = None
    meditation: int | None = None
    quality: int | None = None
    blink_strength: int | None = None

    def is_empty(self) -> bool:
        return (
            self.attention is None
            and self.meditation is None
            and self.quality is None
            and self.blink_strength is None
        )


EventPart = Union[RawBatch, EightBandPowers, ESenseValues]


@dataclass(frozen=True)
class SensorEvent:
    """
    Every field decoded from a single packet.

    Attributes
    ----------
    raw : RawBatch | None
        Raw samples carried by the packet, if any.
    bands : EightBandPowers | None
        Eight-band block, if present.
    esense : ESenseValues | None
        eSense / signal-quality values, if any were present.
    skipped_codes : tuple[int, ...]
        Codes skipped because they are not interpreted (RR interval, extended codes, unknown codes).
    """

    raw: RawBatch | None = None
    bands: EightBandPowers | None = None
    esense: ESenseValues | None = None
    skipped_codes: tuple[int, ...] = field(default=())

    @property
    def raw_samples(self) -> tuple[int, ...]:
        return self.raw.samples if self.raw is not None else ()

    def parts(self) -> Iterator[EventPart]:
        """Yield the variant parts present in this event."""
        if self.raw is not None:
            yield self.raw
        if self.bands is not None:
            yield self.bands
        if self.esense is not None:
            yield self.esense

    def is_empty(self) -> bool:
        return self.raw is None and self.bands is None and self.esense is None
