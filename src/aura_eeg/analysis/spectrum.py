"""
Windowed Power Spectrum

Single-window periodogram used by the SpectralAnalyzer, plus the band
post-processing chain shared by the FFT path and the direct-injection path.

Scaling convention (N = window length, X = rfft of the tapered window):

    P[k] = c[k] * |X[k]|^2 / N,   c[k] = 1 for DC and Nyquist, 2 otherwise

so that sum(P) equals the time-domain energy sum(x_w^2) of the tapered
window (Parseval). The calibrated spectrum then divides by the window's
mean power gain (0.375 for a periodic Hann taper) and multiplies by the
calibration gain.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy import fft as sp_fft
from scipy.signal import get_window

# Denominators below this are treated as zero
NEAR_ZERO: float = 1e-9


def hann_window(window_size: int) -> np.ndarray:
    """Periodic Hann taper, 0.5 * (1 - cos(2 pi n / N))."""
    return get_window("hann", window_size, fftbins=True).astype(np.float64)


def window_power_gain(window: np.ndarray) -> float:
    """Mean power gain of a taper (0.375 for periodic Hann)."""
    return float(np.mean(np.square(window)))


@dataclass
class PowerSpectrum:
    """
    Result of analysing one window.

    Attributes
    ----------
    bins : np.ndarray
        Calibrated single-sided power, shape (N/2 + 1,), DC to Nyquist.
    raw_bins : np.ndarray
        Single-sided power before window-gain and calibration scaling.
    time_energy : float
        sum(x_w^2) of the DC-removed, tapered window.
    freq_energy : float
        sum(raw_bins).
    mean : float
        Window mean removed before tapering.
    """

    bins: np.ndarray
    raw_bins: np.ndarray
    time_energy: float
    freq_energy: float
    mean: float

    @property
    def parseval_error(self) -> float:
        """Relative mismatch between time- and frequency-domain energy."""
        if self.time_energy <= NEAR_ZERO:
            return 0.0
        return abs(self.time_energy - self.freq_energy) / self.time_energy


def compute_power_spectrum(
    samples: np.ndarray,
    window: np.ndarray | None = None,
    gain_calibration: float = 1.0,
    window_gain: float | None = None,
) -> PowerSpectrum:
    """
    Compute the scaled single-sided power spectrum of one window.

    Parameters
    ----------
    samples : np.ndarray
        Window of normalized samples, shape (N,).
    window : np.ndarray, optional
        Taper of length N. Defaults to a periodic Hann window.
    gain_calibration : float
        Multiplier applied to the calibrated bins. Default 1.0.
    window_gain : float, optional
        Mean power gain of the taper; computed from ``window`` if None.

    Returns
    -------
    PowerSpectrum
        Calibrated bins plus the energies used for the Parseval check.

    Raises
    ------
    ValueError
        If ``samples`` is empty or ``window`` has a different length.
    """
    x = np.asarray(samples, dtype=np.float64)
    n = x.size
    if n == 0:
        raise ValueError("cannot compute a spectrum of an empty window")
    if window is None:
        window = hann_window(n)
    if window.shape != x.shape:
        raise ValueError(
            f"window length {window.size} does not match samples length {n}"
        )
    if window_gain is None:
        window_gain = window_power_gain(window)

    mean = float(np.mean(x))
    tapered = (x - mean) * window

    spectrum = sp_fft.rfft(tapered)
    raw_bins = (spectrum.real**2 + spectrum.imag**2) / n
    # Single-sided correction; for even N the last bin is Nyquist
    upper = n // 2 if n % 2 == 0 else raw_bins.size
    raw_bins[1:upper] *= 2.0

    time_energy = float(np.sum(tapered**2))
    freq_energy = float(np.sum(raw_bins))

    bins = raw_bins / window_gain if window_gain > NEAR_ZERO else raw_bins.copy()
    if gain_calibration != 1.0:
        bins = bins * gain_calibration

    return PowerSpectrum(
        bins=bins,
        raw_bins=raw_bins,
        time_energy=time_energy,
        freq_energy=freq_energy,
        mean=mean,
    )


# =============================================================================
# Band Post-Processing
# =============================================================================


def relative_with_floor(values: np.ndarray, floor: float) -> np.ndarray:
    """
    Normalize to unit sum while keeping every value at or above ``floor``.

    Values that would fall below the floor are pinned to it and the rest
    are rescaled to share the remaining mass, so the output still sums to
    one. A near-zero total skips normalization and only applies the floor.

    Parameters
    ----------
    values : np.ndarray
        Non-negative band powers.
    floor : float
        Minimum output value.

    Returns
    -------
    np.ndarray
        Relative powers.
    """
    v = np.asarray(values, dtype=np.float64)
    total = float(np.sum(v))
    if not np.isfinite(total) or total <= NEAR_ZERO:
        return np.maximum(v, floor)

    rel = v / total
    n = rel.size
    if floor * n >= 1.0:
        return np.full(n, 1.0 / n)

    out = rel.copy()
    pinned = np.zeros(n, dtype=bool)
    for _ in range(n):
        low = (out < floor) & ~pinned
        if not low.any():
            break
        pinned |= low
        free = ~pinned
        budget = 1.0 - floor * np.count_nonzero(pinned)
        free_total = float(np.sum(rel[free]))
        out[pinned] = floor
        if free_total > NEAR_ZERO:
            out[free] = rel[free] * (budget / free_total)
        else:
            out[free] = budget / np.count_nonzero(free)
    return out


class BandPostProcessor:
    """
    Relative scaling, flooring, log10 and EMA smoothing of band vectors.

    The smoothing memory lives on the instance, so every analyzer owns its
    own history.

    Parameters
    ----------
    use_relative : bool
        Divide by the band sum (guarding near-zero sums).
    power_floor : float
        Minimum band value before the log step.
    use_log10 : bool
        Apply base-10 log after flooring.
    ema_alpha : float | None
        Smoothing factor in (0, 1]; None disables smoothing.
    """

    def __init__(
        self,
        use_relative: bool = True,
        power_floor: float = 1e-3,
        use_log10: bool = False,
        ema_alpha: float | None = 0.2,
    ) -> None:
        self.use_relative = use_relative
        self.power_floor = power_floor
        self.use_log10 = use_log10
        self.ema_alpha = ema_alpha
        self._smoothed: np.ndarray | None = None

    def reset(self) -> None:
        """Forget the smoothing history."""
        self._smoothed = None

    def process(self, band_values: np.ndarray) -> np.ndarray:
        """
        Run one band vector through the chain.

        Parameters
        ----------
        band_values : np.ndarray
            Band powers in canonical order.

        Returns
        -------
        np.ndarray
            float32 values ready to emit.
        """
        v = np.nan_to_num(
            np.asarray(band_values, dtype=np.float64), nan=0.0, posinf=0.0, neginf=0.0
        )
        v = np.maximum(v, 0.0)

        if self.use_relative:
            v = relative_with_floor(v, self.power_floor)
        else:
            v = np.maximum(v, self.power_floor)

        if self.use_log10:
            v = np.log10(v)

        if self.ema_alpha is not None:
            if self._smoothed is None:
                self._smoothed = v.copy()
            else:
                alpha = self.ema_alpha
                self._smoothed = alpha * v + (1.0 - alpha) * self._smoothed
            v = self._smoothed.copy()

        return v.astype(np.float32)
