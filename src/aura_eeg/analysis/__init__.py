"""
Analysis Module

Contains the canonical band table, the windowed power spectrum with its
post-processing chain, the per-subscriber broadcaster and the threaded
SpectralAnalyzer.
"""

from .bands import BAND_NAMES, CANONICAL_BANDS, Band, band_weight_matrix
from .spectrum import (
    BandPostProcessor,
    PowerSpectrum,
    compute_power_spectrum,
    hann_window,
    relative_with_floor,
)
from .frames import SOURCE_INJECTED, SOURCE_RAW, ESenseFrame, SpectralFrame
from .broadcast import Broadcaster, Subscription, SubscriptionClosed
from .analyzer import AnalyzerConfigError, SpectralAnalyzer

__all__ = [
    "BAND_NAMES",
    "CANONICAL_BANDS",
    "Band",
    "band_weight_matrix",
    "BandPostProcessor",
    "PowerSpectrum",
    "compute_power_spectrum",
    "hann_window",
    "relative_with_floor",
    "SOURCE_INJECTED",
    "SOURCE_RAW",
    "ESenseFrame",
    "SpectralFrame",
    "Broadcaster",
    "Subscription",
    "SubscriptionClosed",
    "AnalyzerConfigError",
    "SpectralAnalyzer",
]
