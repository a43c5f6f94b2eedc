"""
EEG Pipeline - Decoder, Analyzer and Recorder Wiring

Connects the pieces in data-flow order:

    transport bytes -> ThinkGearDecoder -> SensorEvents
        raw samples   -> SpectralAnalyzer + SessionRecorder (raw chunks)
        eight bands   -> SpectralAnalyzer + SessionRecorder (metrics line)
        eSense values -> SpectralAnalyzer -> eSense channel -> metrics thread
                                              -> SessionRecorder (metrics line)

Usage:
    from aura_eeg.pipeline import EEGPipeline

    with EEGPipeline.from_config() as pipeline:
        bands = pipeline.subscribe_bands()
        pipeline.start_recording("MindLink")
        for packet in headset.get_chunks():
            pipeline.feed(packet.data)
        summary = pipeline.stop_recording()
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import queue
import threading
import time
from typing import Any

import numpy as np

from aura_eeg.analysis.analyzer import SpectralAnalyzer
from aura_eeg.analysis.broadcast import Subscription, SubscriptionClosed
from aura_eeg.analysis.frames import ESenseFrame, SpectralFrame
from aura_eeg.config import AnalyzerConfig, RecorderConfig, load_config
from aura_eeg.protocol.events import SensorEvent
from aura_eeg.protocol.thinkgear import ThinkGearDecoder
from aura_eeg.recording.models import MetricsLine, SessionMeta, SessionSummary, utc_now
from aura_eeg.recording.store import SessionRecorder

logger = logging.getLogger(__name__)

# How often the metrics thread re-checks for shutdown (seconds)
_METRICS_POLL_SEC = 0.1


class EEGPipeline:
    """
    Real-time pipeline for one headset.

    Parameters
    ----------
    analyzer : SpectralAnalyzer, optional
        Defaults to an analyzer with default parameters.
    recorder : SessionRecorder, optional
        Defaults to a recorder writing to ``~/AuraSessions``.
    device_name : str
        Label stored with recorded sessions. Default "MindLink".
    sample_rate : int
        Raw sample rate stored with recorded sessions. Default 512.
    channels : int
        Channel count stored with recorded sessions. Default 1.
    """

    def __init__(
        self,
        analyzer: SpectralAnalyzer | None = None,
        recorder: SessionRecorder | None = None,
        device_name: str = "MindLink",
        sample_rate: int = 512,
        channels: int = 1,
    ) -> None:
        self.decoder = ThinkGearDecoder()
        self.analyzer = analyzer if analyzer is not None else SpectralAnalyzer()
        self.recorder = recorder if recorder is not None else SessionRecorder()
        self.device_name = device_name
        self.sample_rate = sample_rate
        self.channels = channels

        self.events_handled = 0
        self._esense_handled = 0
        self._closed = False

        self._esense_sub: Subscription[ESenseFrame] = self.analyzer.subscribe_esense(maxsize=0)
        self._metrics_thread = threading.Thread(
            target=self._metrics_loop,
            name="EEG-Metrics-Thread",
            daemon=True,
        )
        self._metrics_thread.start()

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "EEGPipeline":
        """Build analyzer and recorder from a loaded config dict."""
        if config is None:
            config = load_config()
        device = config.get("device", {})
        return cls(
            analyzer=SpectralAnalyzer.from_config(AnalyzerConfig.from_config(config)),
            recorder=SessionRecorder.from_config(RecorderConfig.from_config(config)),
            device_name=str(device.get("name", "MindLink")),
            sample_rate=int(device.get("sample_rate_hz", 512)),
            channels=int(device.get("channels", 1)),
        )

    # =========================================================================
    # Data path
    # =========================================================================

    def feed(self, chunk: bytes | bytearray | memoryview) -> list[SensorEvent]:
        """
        Decode a transport chunk and route every event it completes.

        Returns
        -------
        list[SensorEvent]
            The decoded events, in stream order.
        """
        events = self.decoder.feed(chunk)
        raw: list[int] = []
        for event in events:
            if event.raw is not None:
                raw.extend(event.raw.samples)
            if event.bands is not None:
                self.analyzer.ingest_eight_bands(event.bands.bands)
                if self.recorder.is_recording:
                    self.recorder.append_metrics(
                        MetricsLine(timestamp=utc_now(), power_bands=dict(event.bands.bands))
                    )
            if event.esense is not None:
                esense = event.esense
                self.analyzer.ingest_esense(esense.attention, esense.meditation, esense.quality)
        if raw:
            samples = np.asarray(raw, dtype=np.int16)
            self.analyzer.ingest_raw_batch(samples)
            if self.recorder.is_recording:
                self.recorder.append_raw_samples(samples)
        self.events_handled += len(events)
        return events

    def subscribe_bands(self, maxsize: int | None = None) -> Subscription[SpectralFrame]:
        return self.analyzer.subscribe_bands(maxsize)

    def subscribe_esense(self, maxsize: int | None = None) -> Subscription[ESenseFrame]:
        return self.analyzer.subscribe_esense(maxsize)

    def flush(self, timeout: float = 5.0) -> bool:
        """
        Wait until everything fed so far has reached the analyzer's
        subscribers and the recorder's queue.

        Returns
        -------
        bool
            False if the timeout expired first.
        """
        deadline = time.monotonic() + timeout
        if not self.analyzer.flush(timeout):
            return False
        sub = self._esense_sub
        while self._esense_handled + sub.dropped < sub.received:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.005)
        return True

    # =========================================================================
    # Recording
    # =========================================================================

    def start_recording(self, device_name: str | None = None) -> SessionMeta:
        """Start a session (no-op returning the open session if recording)."""
        return self.recorder.start(
            device_name or self.device_name,
            sample_rate=self.sample_rate,
            channels=self.channels,
        )

    def stop_recording(self) -> SessionSummary | None:
        """Flush pending metrics, then close the session."""
        if not self.recorder.is_recording:
            return None
        if not self.flush():
            logger.warning("Pipeline flush timed out; stopping recording anyway")
        return self.recorder.stop()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Stop recording, then shut down the analyzer, metrics thread and recorder."""
        if self._closed:
            return
        self._closed = True
        try:
            self.stop_recording()
        finally:
            self.analyzer.close()
            self._metrics_thread.join(timeout=5)
            if self._metrics_thread.is_alive():
                logger.warning("Metrics thread did not stop gracefully")
            self.recorder.close()
        logger.info(f"Pipeline closed after {self.events_handled} events")

    def __enter__(self) -> "EEGPipeline":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def get_status(self) -> dict[str, Any]:
        """Combined decoder, analyzer and recorder status."""
        return {
            "events_handled": self.events_handled,
            "decoder": self.decoder.stats.as_dict(),
            "analyzer": self.analyzer.get_status(),
            "recorder": self.recorder.get_status(),
        }

    def __repr__(self) -> str:
        return (
            f"EEGPipeline(device={self.device_name!r}, events={self.events_handled}, "
            f"recording={self.recorder.is_recording})"
        )

    # =========================================================================
    # Metrics thread
    # =========================================================================

    def _metrics_loop(self) -> None:
        logger.debug("Metrics loop started")
        while True:
            try:
                frame = self._esense_sub.get(timeout=_METRICS_POLL_SEC)
            except queue.Empty:
                continue
            except SubscriptionClosed:
                break
            try:
                if self.recorder.is_recording:
                    self.recorder.append_metrics(
                        MetricsLine(
                            timestamp=datetime.fromtimestamp(frame.timestamp, tz=timezone.utc),
                            attention=frame.attention,
                            meditation=frame.meditation,
                            signal_quality=frame.quality,
                        )
                    )
            except Exception as e:
                logger.error(f"Error recording eSense metrics: {e}", exc_info=True)
            finally:
                self._esense_handled += 1
        logger.debug("Metrics loop stopped")
