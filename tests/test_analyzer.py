"""
Spectral Analyzer Unit Tests

Validates construction-time checks, the raw-sample window path, the
direct-injection path, the eSense path and the threaded lifecycle.
"""

from __future__ import annotations

import queue
import threading

import numpy as np
import pytest

from aura_eeg.analysis import (
    BAND_NAMES,
    AnalyzerConfigError,
    ESenseFrame,
    SpectralAnalyzer,
    SpectralFrame,
)
from aura_eeg.analysis.spectrum import BandPostProcessor
from aura_eeg.config import AnalyzerConfig
from aura_eeg.protocol import EightBandPowers, ESenseValues, RawBatch, SensorEvent

FS = 512


def _tone(freq: float = 10.0, amplitude: float = 400.0, n: int = 512) -> np.ndarray:
    t = np.arange(n) / FS
    return np.round(amplitude * np.sin(2 * np.pi * freq * t)).astype(np.int16)


def _collect(sub, count: int, timeout: float = 2.0) -> list:
    return [sub.get(timeout=timeout) for _ in range(count)]


@pytest.fixture
def analyzer():
    a = SpectralAnalyzer(ema_alpha=None)
    yield a
    a.close()


class TestConstruction:
    """Test construction-time validation."""

    @pytest.mark.parametrize("n", [0, 3, 100, 500, 513])
    def test_non_power_of_two_window(self, n: int) -> None:
        with pytest.raises(AnalyzerConfigError):
            SpectralAnalyzer(window_size=n)

    def test_config_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            SpectralAnalyzer(window_size=100)

    @pytest.mark.parametrize("hop", [0, -1, 513])
    def test_hop_out_of_range(self, hop: int) -> None:
        with pytest.raises(AnalyzerConfigError):
            SpectralAnalyzer(hop_size=hop)

    @pytest.mark.parametrize("alpha", [0.0, -0.1, 1.5])
    def test_alpha_out_of_range(self, alpha: float) -> None:
        with pytest.raises(AnalyzerConfigError):
            SpectralAnalyzer(ema_alpha=alpha)

    def test_non_positive_rate(self) -> None:
        with pytest.raises(AnalyzerConfigError):
            SpectralAnalyzer(sample_rate_hz=0)

    def test_defaults(self) -> None:
        with SpectralAnalyzer() as a:
            assert a.window_size == 512
            assert a.hop_size == 512
            assert a.sample_rate_hz == 512.0
            assert a.config.ema_alpha == 0.2
            assert a.is_running

    def test_from_config(self) -> None:
        cfg = AnalyzerConfig(window_size=256, hop_size=128, use_log10=True)
        with SpectralAnalyzer.from_config(cfg) as a:
            assert a.window_size == 256
            assert a.hop_size == 128
            assert a.config.use_log10 is True


class TestRawPath:
    """Test the windowed FFT path."""

    def test_ten_hz_tone_lands_in_high_alpha(self, analyzer) -> None:
        """A 10 Hz, 400-count tone puts most relative power in highAlpha."""
        sub = analyzer.subscribe_bands()
        analyzer.ingest_raw_batch(_tone())
        frame = sub.get(timeout=2.0)

        assert isinstance(frame, SpectralFrame)
        assert frame.source == "raw"
        assert frame.dominant_band() == "highAlpha"
        assert frame.bands["highAlpha"] > 0.5
        assert analyzer.last_parseval_error < 0.01

    def test_relative_frame_invariants(self, analyzer) -> None:
        rng = np.random.default_rng(5)
        sub = analyzer.subscribe_bands()
        analyzer.ingest_raw_batch(rng.integers(-2048, 2048, size=512 * 4))
        frames = _collect(sub, 4)

        for frame in frames:
            assert list(frame.bands) == list(BAND_NAMES)
            assert sum(frame.bands.values()) == pytest.approx(1.0, abs=1e-5)
            assert min(frame.bands.values()) >= np.float32(1e-3)
        assert analyzer.max_parseval_error < 0.01

    def test_no_frame_before_full_window(self, analyzer) -> None:
        sub = analyzer.subscribe_bands()
        analyzer.ingest_raw_batch(_tone(n=511))
        assert analyzer.flush(timeout=2.0)

        with pytest.raises(queue.Empty):
            sub.get(timeout=0.05)
        assert analyzer.get_status()["buffered_samples"] == 511

    def test_hop_overlap_frame_count(self) -> None:
        """N=512, hop=256: 1024 samples complete three windows."""
        with SpectralAnalyzer(hop_size=256, ema_alpha=None) as a:
            sub = a.subscribe_bands()
            a.ingest_raw_batch(_tone(n=1024))
            assert a.flush(timeout=2.0)

            assert a.windows_processed == 3
            assert len(sub) == 3
            assert [f.index for f in sub.drain()] == [0, 1, 2]

    def test_single_sample_ingest_matches_batch(self) -> None:
        samples = _tone(freq=20.0, n=1024)
        with SpectralAnalyzer() as one, SpectralAnalyzer() as batch:
            sub_one = one.subscribe_bands()
            sub_batch = batch.subscribe_bands()
            for s in samples:
                one.ingest_raw(int(s))
            batch.ingest_raw_batch(samples)
            frames_one = _collect(sub_one, 2)
            frames_batch = _collect(sub_batch, 2)

        for a, b in zip(frames_one, frames_batch):
            assert a.bands == b.bands

    def test_silent_window_floors_every_band(self, analyzer) -> None:
        """An all-zero window is degenerate, not an error."""
        sub = analyzer.subscribe_bands()
        analyzer.ingest_raw_batch(np.zeros(512, dtype=np.int16))
        frame = sub.get(timeout=2.0)

        assert all(v == pytest.approx(1e-3) for v in frame.bands.values())

    def test_log10_absolute_mode(self) -> None:
        with SpectralAnalyzer(use_log10=True, use_relative=False, ema_alpha=None) as a:
            sub = a.subscribe_bands()
            a.ingest_raw_batch(np.zeros(512, dtype=np.int16))
            frame = sub.get(timeout=2.0)

        assert all(v == pytest.approx(-3.0) for v in frame.bands.values())

    def test_independent_smoothing_memory(self) -> None:
        """Two analyzers fed different data keep separate EMA state."""
        with SpectralAnalyzer(ema_alpha=0.2) as a, SpectralAnalyzer(ema_alpha=0.2) as b:
            sub_a = a.subscribe_bands()
            sub_b = b.subscribe_bands()
            a.ingest_raw_batch(_tone(10.0, n=1024))
            b.ingest_raw_batch(_tone(40.0, n=512))
            b.ingest_raw_batch(_tone(10.0, n=512))
            frames_a = _collect(sub_a, 2)
            frames_b = _collect(sub_b, 2)

        # Same input on the second window, different history
        assert frames_a[1].bands != frames_b[1].bands
        assert frames_a[1].dominant_band() == "highAlpha"


class TestInjectedPath:
    """Test vendor band values going through the post-processing chain."""

    def test_injected_frame_is_relative(self, analyzer) -> None:
        sub = analyzer.subscribe_bands()
        values = {name: (i + 1) * 1000 for i, name in enumerate(BAND_NAMES)}
        analyzer.ingest_eight_bands(values)
        frame = sub.get(timeout=2.0)

        assert frame.source == "injected"
        assert sum(frame.bands.values()) == pytest.approx(1.0, abs=1e-5)
        assert frame.dominant_band() == "midGamma"

    def test_matches_post_processor(self) -> None:
        """Injected values go through exactly the relative/floor/log/EMA chain."""
        values = [500, 20, 3000, 0, 70, 12, 9, 1]
        post = BandPostProcessor(use_relative=True, power_floor=1e-3, ema_alpha=0.2)
        with SpectralAnalyzer() as a:
            sub = a.subscribe_bands()
            for scale in (1, 2):
                a.ingest_eight_bands({n: v * scale for n, v in zip(BAND_NAMES, values)})
            frames = _collect(sub, 2)

        expected_1 = post.process(np.array(values, dtype=float))
        expected_2 = post.process(np.array(values, dtype=float) * 2)
        assert np.allclose([frames[0].bands[n] for n in BAND_NAMES], expected_1)
        assert np.allclose([frames[1].bands[n] for n in BAND_NAMES], expected_2)

    def test_missing_bands_treated_as_zero(self, analyzer) -> None:
        sub = analyzer.subscribe_bands()
        analyzer.ingest_eight_bands({"theta": 10})
        frame = sub.get(timeout=2.0)

        assert frame.bands["delta"] == pytest.approx(1e-3)
        assert frame.bands["theta"] == pytest.approx(1 - 7e-3, abs=1e-6)

    def test_none_or_empty_ignored(self, analyzer) -> None:
        sub = analyzer.subscribe_bands()
        analyzer.ingest_eight_bands(None)
        analyzer.ingest_eight_bands({})
        assert analyzer.flush(timeout=2.0)

        assert len(sub) == 0


class TestESensePath:
    """Test immediate eSense re-broadcast."""

    def test_values_wrapped_into_frame(self, analyzer) -> None:
        sub = analyzer.subscribe_esense()
        analyzer.ingest_esense(attention=70, quality=0)
        frame = sub.get(timeout=2.0)

        assert isinstance(frame, ESenseFrame)
        assert frame.attention == 70
        assert frame.meditation is None
        assert frame.quality == 0

    def test_all_none_emits_nothing(self, analyzer) -> None:
        sub = analyzer.subscribe_esense()
        analyzer.ingest_esense()
        assert analyzer.flush(timeout=2.0)

        assert len(sub) == 0

    def test_ingest_event_dispatch(self, analyzer) -> None:
        bands_sub = analyzer.subscribe_bands()
        esense_sub = analyzer.subscribe_esense()
        event = SensorEvent(
            raw=RawBatch(tuple(int(v) for v in _tone())),
            bands=EightBandPowers({name: 10 for name in BAND_NAMES}),
            esense=ESenseValues(attention=1, meditation=2, quality=3),
        )
        analyzer.ingest_event(event)
        assert analyzer.flush(timeout=2.0)

        sources = sorted(f.source for f in bands_sub.drain())
        assert sources == ["injected", "raw"]
        assert esense_sub.get(timeout=1.0).meditation == 2


class TestSubscribers:
    """Test fan-out semantics through the analyzer channels."""

    def test_every_subscriber_sees_every_frame(self, analyzer) -> None:
        subs = [analyzer.subscribe_bands() for _ in range(3)]
        analyzer.ingest_raw_batch(_tone(n=1536))
        assert analyzer.flush(timeout=2.0)

        indices = [[f.index for f in s.drain()] for s in subs]
        assert indices == [[0, 1, 2]] * 3

    def test_late_subscriber_gets_no_replay(self, analyzer) -> None:
        early = analyzer.subscribe_bands()
        analyzer.ingest_raw_batch(_tone())
        assert analyzer.flush(timeout=2.0)
        late = analyzer.subscribe_bands()
        analyzer.ingest_raw_batch(_tone())
        assert analyzer.flush(timeout=2.0)

        assert len(early) == 2
        assert [f.index for f in late.drain()] == [1]

    def test_stalled_subscriber_does_not_block(self) -> None:
        with SpectralAnalyzer(ema_alpha=None, subscriber_queue_size=2) as a:
            stalled = a.subscribe_bands()
            a.ingest_raw_batch(_tone(n=512 * 10))
            assert a.flush(timeout=5.0)

            assert a.frames_emitted == 10
            assert len(stalled) == 2
            assert stalled.dropped == 8


class TestLifecycle:
    """Test flush, close and status reporting."""

    def test_close_ends_subscriptions(self) -> None:
        a = SpectralAnalyzer()
        sub = a.subscribe_bands()
        a.ingest_raw_batch(_tone())
        a.close()

        # Frames emitted before close are still readable, then iteration stops
        assert len(list(sub)) == 1
        assert not a.is_running

    def test_ingest_after_close_raises(self) -> None:
        a = SpectralAnalyzer()
        a.close()
        with pytest.raises(RuntimeError):
            a.ingest_raw(0)

    def test_close_is_idempotent(self) -> None:
        a = SpectralAnalyzer()
        a.close()
        a.close()

    def test_status(self, analyzer) -> None:
        analyzer.subscribe_bands()
        analyzer.ingest_raw_batch(_tone(n=600))
        assert analyzer.flush(timeout=2.0)
        status = analyzer.get_status()

        assert status["samples_ingested"] == 600
        assert status["windows_processed"] == 1
        assert status["buffered_samples"] == 88
        assert status["band_subscribers"] == 1


class TestConcurrentProducers:
    """Several threads feeding one analyzer."""

    def test_parallel_ingest(self, analyzer) -> None:
        """Every window, injection and eSense update from every thread is emitted once."""
        n_producers = 4
        bands_sub = analyzer.subscribe_bands(maxsize=0)
        esense_sub = analyzer.subscribe_esense(maxsize=0)
        barrier = threading.Barrier(n_producers)
        signal = _tone(n=1024)
        band_values = {name: 100 for name in BAND_NAMES}

        def produce(producer: int) -> None:
            barrier.wait()
            for offset in range(0, signal.size, 128):
                analyzer.ingest_raw_batch(signal[offset:offset + 128])
            for _ in range(3):
                analyzer.ingest_eight_bands(band_values)
            for i in range(5):
                analyzer.ingest_esense(attention=producer * 10 + i, quality=0)

        threads = [threading.Thread(target=produce, args=(p,)) for p in range(n_producers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        assert analyzer.flush(timeout=5.0)

        frames = bands_sub.drain()
        sources = [f.source for f in frames]
        assert sources.count("raw") == 8
        assert sources.count("injected") == 12
        assert [f.index for f in frames] == list(range(20))

        esense_frames = esense_sub.drain()
        assert sorted(f.attention for f in esense_frames) == sorted(
            p * 10 + i for p in range(n_producers) for i in range(5)
        )
        assert analyzer.get_status()["samples_ingested"] == n_producers * signal.size
