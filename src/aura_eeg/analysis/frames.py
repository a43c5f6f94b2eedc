"""Broadcast payloads emitted by the SpectralAnalyzer."""

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Mapping

# SpectralFrame.source values
SOURCE_RAW = "raw"
SOURCE_INJECTED = "injected"


@dataclass(frozen=True)
class SpectralFrame:
    """
    Eight canonical band powers for one analysis step.

    Attributes
    ----------
    bands : Mapping[str, float]
        Band name -> power (float32 precision), canonical order.
    source : str
        "raw" for FFT-derived frames, "injected" for vendor band values.
    index : int
        Per-analyzer emission counter, starting at 0.
    timestamp : float
        Wall-clock time of emission (seconds since the epoch).
    """

    bands: Mapping[str, float]
    source: str = SOURCE_RAW
    index: int = 0
    timestamp: float = field(default_factory=time.time)

    def total(self) -> float:
        return float(sum(self.bands.values()))

    def dominant_band(self) -> str:
        """Name of the band holding the largest value."""
        return max(self.bands, key=self.bands.__getitem__)


@dataclass(frozen=True)
class ESenseFrame:
    """Attention / meditation (0-100) and quality (0 best .. 200 no contact)."""

    attention: int | None = None
    meditation: int | None = None
    quality: int | None = None
    timestamp: float = field(default_factory=time.time)

    def is_empty(self) -> bool:
        return self.attention is None and self.meditation is None and self.quality is None
