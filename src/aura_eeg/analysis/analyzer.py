"""
Spectral Analyzer - Real-Time Band Power Extraction

Turns a stream of raw ThinkGear samples into eight-band power frames and
re-broadcasts eSense values. All mutable state (sample accumulator,
smoothing memory, FFT scratch) is owned by one worker thread that drains
a work queue, so any number of producer threads may call the ingest
methods concurrently without blocking each other.

Per window of N samples (the window then advances by the hop length):
    normalize by full scale -> remove DC -> periodic Hann -> rfft ->
    single-sided power scaled by 1/N, window gain and calibration ->
    fractional-bin band integration -> relative / floor / log10 / EMA

Vendor band values injected directly skip straight to the relative /
floor / log10 / EMA stage, sharing the same smoothing memory.

Usage:
    from aura_eeg.analysis import SpectralAnalyzer

    with SpectralAnalyzer() as analyzer:
        bands = analyzer.subscribe_bands()
        analyzer.ingest_raw_batch(samples)
        frame = bands.get(timeout=1.0)
        print(frame.dominant_band())
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Iterable, Mapping

import numpy as np

from aura_eeg.analysis.bands import BAND_NAMES, band_weight_matrix, integrate_bands
from aura_eeg.analysis.broadcast import Broadcaster, Subscription
from aura_eeg.analysis.frames import (
    SOURCE_INJECTED,
    SOURCE_RAW,
    ESenseFrame,
    SpectralFrame,
)
from aura_eeg.analysis.spectrum import (
    BandPostProcessor,
    compute_power_spectrum,
    hann_window,
    window_power_gain,
)
from aura_eeg.config import AnalyzerConfig
from aura_eeg.protocol.events import EightBandPowers, ESenseValues, SensorEvent
from aura_eeg.validation.input_validators import validate_analyzer_config

logger = logging.getLogger(__name__)

# Relative Parseval mismatch tolerated before a warning is logged
PARSEVAL_TOLERANCE = 0.01

_RAW = "raw"
_BANDS = "bands"
_ESENSE = "esense"
_MARKER = "marker"
_STOP = object()


class AnalyzerConfigError(ValueError):
    """Raised when an analyzer is constructed with unusable parameters."""


class SpectralAnalyzer:
    """
    Threaded band-power analyzer with two broadcast channels.

    Parameters
    ----------
    sample_rate_hz : float
        Raw sample rate. Default 512 Hz.
    window_size : int
        FFT length N, a power of two. Default 512.
    hop_size : int, optional
        Samples the window advances per frame, 1..N. Default N.
    use_log10 : bool
        Apply base-10 log after flooring. Default False.
    use_relative : bool
        Normalize bands to unit sum. Default True.
    ema_alpha : float | None
        EMA smoothing factor in (0, 1]; None disables. Default 0.2.
    gain_calibration : float
        Multiplier on every power bin. Default 1.0.
    full_scale : float
        Effective sensor full-scale count. Default 2048.
    power_floor : float
        Minimum emitted band value (before log). Default 1e-3.
    subscriber_queue_size : int
        Per-subscriber buffer capacity, 0 = unbounded. Default 256.

    Raises
    ------
    AnalyzerConfigError
        If the parameters fail validation (e.g., N not a power of two).
    """

    def __init__(
        self,
        sample_rate_hz: float = 512.0,
        window_size: int = 512,
        hop_size: int | None = None,
        use_log10: bool = False,
        use_relative: bool = True,
        ema_alpha: float | None = 0.2,
        gain_calibration: float = 1.0,
        full_scale: float = 2048.0,
        power_floor: float = 1e-3,
        subscriber_queue_size: int = 256,
    ) -> None:
        self.config = AnalyzerConfig(
            sample_rate_hz=sample_rate_hz,
            window_size=window_size,
            hop_size=hop_size,
            use_log10=use_log10,
            use_relative=use_relative,
            ema_alpha=ema_alpha,
            gain_calibration=gain_calibration,
            full_scale=full_scale,
            power_floor=power_floor,
            subscriber_queue_size=subscriber_queue_size,
        )
        result = validate_analyzer_config(self.config)
        if not result.is_valid:
            raise AnalyzerConfigError("; ".join(result.errors))
        for warning in result.warnings:
            logger.warning(warning)

        self.sample_rate_hz = float(sample_rate_hz)
        self.window_size = window_size
        self.hop_size = result.effective_hop

        # Worker-owned state
        self._window = hann_window(window_size)
        self._window_gain = window_power_gain(self._window)
        self._weights = band_weight_matrix(self.sample_rate_hz, window_size)
        self._accumulator = np.zeros(window_size, dtype=np.float64)
        self._filled = 0
        self._post = BandPostProcessor(
            use_relative=use_relative,
            power_floor=power_floor,
            use_log10=use_log10,
            ema_alpha=ema_alpha,
        )
        self._frame_index = 0

        # Diagnostics
        self.samples_ingested = 0
        self.windows_processed = 0
        self.frames_emitted = 0
        self.last_parseval_error = 0.0
        self.max_parseval_error = 0.0

        self._bands_channel: Broadcaster[SpectralFrame] = Broadcaster(
            "bands", subscriber_queue_size
        )
        self._esense_channel: Broadcaster[ESenseFrame] = Broadcaster(
            "esense", subscriber_queue_size
        )

        self._queue: queue.Queue = queue.Queue()
        self._closed = False
        self._worker = threading.Thread(
            target=self._run,
            name="SpectralAnalyzer-Worker",
            daemon=True,
        )
        self._worker.start()

        logger.info(
            f"SpectralAnalyzer started: {self.sample_rate_hz:g} Hz, N={window_size}, "
            f"hop={self.hop_size}, relative={use_relative}, log10={use_log10}, "
            f"ema_alpha={ema_alpha}"
        )

    @classmethod
    def from_config(cls, config: AnalyzerConfig | None = None) -> "SpectralAnalyzer":
        """Build from an AnalyzerConfig (defaults from configs/ if None)."""
        if config is None:
            config = AnalyzerConfig.from_config()
        return cls(
            sample_rate_hz=config.sample_rate_hz,
            window_size=config.window_size,
            hop_size=config.hop_size,
            use_log10=config.use_log10,
            use_relative=config.use_relative,
            ema_alpha=config.ema_alpha,
            gain_calibration=config.gain_calibration,
            full_scale=config.full_scale,
            power_floor=config.power_floor,
            subscriber_queue_size=config.subscriber_queue_size,
        )

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe_bands(self, maxsize: int | None = None) -> Subscription[SpectralFrame]:
        """Subscribe to band-power frames emitted from now on."""
        return self._bands_channel.subscribe(maxsize)

    def subscribe_esense(self, maxsize: int | None = None) -> Subscription[ESenseFrame]:
        """Subscribe to eSense frames emitted from now on."""
        return self._esense_channel.subscribe(maxsize)

    # =========================================================================
    # Ingestion (any thread, never blocks on processing)
    # =========================================================================

    def ingest_raw(self, sample: int) -> None:
        """Queue one raw sample."""
        self._submit((_RAW, (int(sample),)))

    def ingest_raw_batch(self, samples: Iterable[int]) -> None:
        """Queue a sequence of raw samples as one work item."""
        batch = np.asarray(list(samples) if not isinstance(samples, np.ndarray) else samples)
        if batch.size:
            self._submit((_RAW, batch.astype(np.float64, copy=True)))

    def ingest_esense(
        self,
        attention: int | None = None,
        meditation: int | None = None,
        quality: int | None = None,
    ) -> None:
        """Queue eSense values for immediate re-broadcast."""
        if attention is None and meditation is None and quality is None:
            return
        self._submit((_ESENSE, (attention, meditation, quality)))

    def ingest_eight_bands(self, bands: Mapping[str, float] | None) -> None:
        """Queue vendor band powers for the post-processing chain."""
        if not bands:
            return
        values = np.array([float(bands.get(name, 0.0)) for name in BAND_NAMES])
        self._submit((_BANDS, values))

    def ingest_event(self, event: SensorEvent) -> None:
        """Dispatch every part of a decoded SensorEvent."""
        for part in event.parts():
            if isinstance(part, EightBandPowers):
                self.ingest_eight_bands(part.bands)
            elif isinstance(part, ESenseValues):
                self.ingest_esense(part.attention, part.meditation, part.quality)
            else:
                self.ingest_raw_batch(part.samples)

    def _submit(self, item: Any) -> None:
        if self._closed:
            raise RuntimeError("SpectralAnalyzer is closed")
        self._queue.put(item)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def flush(self, timeout: float | None = None) -> bool:
        """
        Wait until everything queued before this call has been processed.

        Returns
        -------
        bool
            False if the timeout expired first.
        """
        if self._closed:
            return not self._worker.is_alive()
        done = threading.Event()
        self._queue.put((_MARKER, done))
        return done.wait(timeout)

    def close(self, timeout: float | None = 5.0) -> None:
        """Process queued work, stop the worker and close all subscriptions."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)
        self._worker.join(timeout=timeout)
        if self._worker.is_alive():
            logger.warning("Analyzer worker did not stop gracefully")
        self._bands_channel.close()
        self._esense_channel.close()
        logger.info(
            f"SpectralAnalyzer stopped: {self.windows_processed} windows, "
            f"{self.frames_emitted} band frames"
        )

    @property
    def is_running(self) -> bool:
        return not self._closed and self._worker.is_alive()

    def get_status(self) -> dict[str, Any]:
        """Current analyzer status."""
        return {
            "running": self.is_running,
            "samples_ingested": self.samples_ingested,
            "windows_processed": self.windows_processed,
            "frames_emitted": self.frames_emitted,
            "pending_work": self._queue.qsize(),
            "buffered_samples": self._filled,
            "last_parseval_error": self.last_parseval_error,
            "band_subscribers": self._bands_channel.subscriber_count,
            "esense_subscribers": self._esense_channel.subscriber_count,
        }

    def __enter__(self) -> "SpectralAnalyzer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"SpectralAnalyzer(fs={self.sample_rate_hz:g}, N={self.window_size}, "
            f"hop={self.hop_size}, frames={self.frames_emitted})"
        )

    # =========================================================================
    # Worker
    # =========================================================================

    def _run(self) -> None:
        logger.debug("Analyzer worker loop started")
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            kind, payload = item
            try:
                if kind == _RAW:
                    self._accumulate(payload)
                elif kind == _BANDS:
                    self._emit_bands(payload, SOURCE_INJECTED)
                elif kind == _ESENSE:
                    attention, meditation, quality = payload
                    self._esense_channel.publish(
                        ESenseFrame(attention=attention, meditation=meditation, quality=quality)
                    )
                elif kind == _MARKER:
                    payload.set()
            except Exception as e:
                logger.error(f"Error in analyzer worker ({kind}): {e}", exc_info=True)
        logger.debug("Analyzer worker loop stopped")

    def _accumulate(self, samples: Any) -> None:
        x = np.asarray(samples, dtype=np.float64) / self.config.full_scale
        self.samples_ingested += x.size
        n = self.window_size
        offset = 0
        while offset < x.size:
            take = min(n - self._filled, x.size - offset)
            self._accumulator[self._filled:self._filled + take] = x[offset:offset + take]
            self._filled += take
            offset += take
            if self._filled == n:
                self._process_window(self._accumulator)
                keep = n - self.hop_size
                if keep > 0:
                    self._accumulator[:keep] = self._accumulator[self.hop_size:].copy()
                self._filled = keep

    def _process_window(self, window_samples: np.ndarray) -> None:
        spectrum = compute_power_spectrum(
            window_samples,
            self._window,
            gain_calibration=self.config.gain_calibration,
            window_gain=self._window_gain,
        )
        self.windows_processed += 1
        self.last_parseval_error = spectrum.parseval_error
        self.max_parseval_error = max(self.max_parseval_error, spectrum.parseval_error)
        if spectrum.parseval_error > PARSEVAL_TOLERANCE:
            logger.warning(
                f"Parseval mismatch {spectrum.parseval_error:.4f} in window "
                f"{self.windows_processed}"
            )
        self._emit_bands(integrate_bands(spectrum.bins, self._weights), SOURCE_RAW)

    def _emit_bands(self, band_values: np.ndarray, source: str) -> None:
        values = self._post.process(band_values)
        frame = SpectralFrame(
            bands={name: float(v) for name, v in zip(BAND_NAMES, values)},
            source=source,
            index=self._frame_index,
        )
        self._frame_index += 1
        self.frames_emitted += 1
        delivered = self._bands_channel.publish(frame)
        logger.debug(
            f"Band frame {frame.index} ({source}) -> {delivered} subscribers, "
            f"dominant={frame.dominant_band()}"
        )
