"""
Canonical EEG Bands

The eight NeuroSky band definitions and the fractional-bin weight matrix
used to integrate a power spectrum over each band.

Bin k of an N-point spectrum at sample rate fs is taken to cover
[k, k + 1) * fs / N. A band edge that falls inside a bin contributes the
overlapping fraction of that bin, so for 512 Hz / 512 points delta
(0.5-2.75 Hz) takes 50% of bin 0, all of bin 1 and 75% of bin 2.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Band:
    """A named frequency range in Hz (low inclusive, high exclusive)."""

    name: str
    low_hz: float
    high_hz: float

    @property
    def width_hz(self) -> float:
        return self.high_hz - self.low_hz


CANONICAL_BANDS: tuple[Band, ...] = (
    Band("delta", 0.5, 2.75),
    Band("theta", 3.5, 6.75),
    Band("lowAlpha", 7.5, 9.25),
    Band("highAlpha", 10.0, 11.75),
    Band("lowBeta", 13.0, 16.75),
    Band("highBeta", 18.0, 29.75),
    Band("lowGamma", 31.0, 39.75),
    Band("midGamma", 41.0, 49.75),
)

BAND_NAMES: tuple[str, ...] = tuple(band.name for band in CANONICAL_BANDS)


def fractional_bin_weights(low_bin: float, high_bin: float, n_bins: int) -> np.ndarray:
    """
    Weight of each bin inside the interval [low_bin, high_bin).

    Parameters
    ----------
    low_bin, high_bin : float
        Band edges expressed in (fractional) bin units.
    n_bins : int
        Number of spectrum bins.

    Returns
    -------
    np.ndarray
        Weights in [0, 1], shape (n_bins,).

    Examples
    --------
    >>> fractional_bin_weights(0.5, 2.75, 5)
    array([0.5 , 1.  , 0.75, 0.  , 0.  ])
    """
    k = np.arange(n_bins, dtype=np.float64)
    overlap = np.minimum(k + 1.0, high_bin) - np.maximum(k, low_bin)
    return np.clip(overlap, 0.0, 1.0)


def band_weight_matrix(
    sample_rate_hz: float,
    window_size: int,
    bands: tuple[Band, ...] = CANONICAL_BANDS,
) -> np.ndarray:
    """
    Build the (n_bands, N/2 + 1) matrix mapping power bins to band powers.

    Parameters
    ----------
    sample_rate_hz : float
        Sample rate of the windowed signal.
    window_size : int
        FFT length N.
    bands : tuple[Band, ...]
        Bands to integrate. Default is the canonical eight.

    Returns
    -------
    np.ndarray
        Weight matrix; ``weights @ power_bins`` yields band powers.
    """
    n_bins = window_size // 2 + 1
    bin_hz = sample_rate_hz / window_size
    weights = np.zeros((len(bands), n_bins), dtype=np.float64)
    for row, band in enumerate(bands):
        weights[row] = fractional_bin_weights(
            band.low_hz / bin_hz, band.high_hz / bin_hz, n_bins
        )
    return weights


def integrate_bands(
    power_bins: np.ndarray,
    weights: np.ndarray,
) -> np.ndarray:
    """Band powers for one spectrum, in the row order of ``weights``."""
    return weights @ np.asarray(power_bins, dtype=np.float64)
