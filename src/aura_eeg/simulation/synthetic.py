"""
Synthetic Headset - ThinkGear Byte Stream Simulation

Produces the byte stream a single-channel NeuroSky headset would send:
one 0x80 raw-sample packet per sample at 512 Hz, plus one packet per
second carrying signal quality, attention, meditation and the 0x83
eight-band block. The raw signal is a sum of sinusoids in the delta,
theta, alpha, beta and gamma ranges with uniform noise, clamped to the
sensor's +/-2048 range.

Usage:
    from aura_eeg.simulation.synthetic import SyntheticHeadset

    headset = SyntheticHeadset(duration_sec=10.0, seed=0)
    for packet in headset.get_chunks(chunk_size_ms=100):
        events = decoder.feed(packet.data)
"""

from __future__ import annotations

from dataclasses import dataclass
import math
import time
from typing import Generator

import numpy as np

from aura_eeg.protocol.constants import (
    ASIC_BAND_ORDER,
    ESENSE_MAX,
    POOR_SIGNAL_NO_CONTACT,
)
from aura_eeg.protocol.thinkgear import (
    encode_bands_payload,
    encode_esense_payload,
    encode_packet,
    encode_raw_payload,
)

# (frequency Hz, amplitude in raw counts)
DEFAULT_COMPONENTS: tuple[tuple[float, float], ...] = (
    (2.0, 150.0),
    (5.0, 200.0),
    (10.0, 400.0),
    (20.0, 250.0),
    (35.0, 100.0),
)

SENSOR_LIMIT = 2048

# Relative band levels matching DEFAULT_COMPONENTS; (base, modulation depth, rate Hz)
_BAND_PROFILE: dict[str, tuple[float, float, float]] = {
    "delta": (0.08, 0.03, 0.05),
    "theta": (0.14, 0.05, 0.07),
    "lowAlpha": (0.05, 0.02, 0.09),
    "highAlpha": (0.52, 0.10, 0.11),
    "lowBeta": (0.03, 0.02, 0.13),
    "highBeta": (0.20, 0.06, 0.15),
    "lowGamma": (0.03, 0.01, 0.17),
    "midGamma": (0.01, 0.01, 0.19),
}

# Scale from relative level to the integer units of the 0x83 block
_BAND_UNITS = 1_000_000


@dataclass
class StreamPacket:
    """
    One chunk of simulated transport bytes.

    Attributes
    ----------
    data : bytes
        ThinkGear-framed packets, ready for ThinkGearDecoder.feed().
    timestamp : float
        Time of the first sample in the chunk, seconds from stream start.
    samples : np.ndarray
        The int16 raw samples encoded in ``data``.
    """

    data: bytes
    timestamp: float
    samples: np.ndarray


class SyntheticHeadset:
    """
    Generates a ThinkGear byte stream from a synthetic EEG signal.

    Parameters
    ----------
    sample_rate_hz : float
        Raw sample rate. Default 512 Hz.
    duration_sec : float, optional
        Stream length; None streams forever.
    seed : int, optional
        Seed for the noise and jitter generator.
    noise_amplitude : float
        Half-width of the uniform noise, in raw counts. Default 50.
    components : tuple[tuple[float, float], ...]
        (frequency, amplitude) pairs of the synthetic signal.
    simulate_realtime : bool
        If True, sleep so chunks arrive at the sensor's pace.
    signal_quality : int
        Poor-signal value reported once per second, 0 (good contact) to
        200 (no contact). Default 0.
    """

    def __init__(
        self,
        sample_rate_hz: float = 512.0,
        duration_sec: float | None = None,
        seed: int | None = None,
        noise_amplitude: float = 50.0,
        components: tuple[tuple[float, float], ...] = DEFAULT_COMPONENTS,
        simulate_realtime: bool = False,
        signal_quality: int = 0,
    ) -> None:
        if not 0 <= signal_quality <= POOR_SIGNAL_NO_CONTACT:
            raise ValueError(
                f"signal_quality must be in 0..{POOR_SIGNAL_NO_CONTACT}, got {signal_quality}"
            )
        self.sample_rate_hz = sample_rate_hz
        self.duration_sec = duration_sec
        self.noise_amplitude = noise_amplitude
        self.components = components
        self.simulate_realtime = simulate_realtime
        self.signal_quality = signal_quality
        self._seed = seed
        self._rng = np.random.default_rng(seed)
        self._current_sample = 0

    @property
    def n_samples(self) -> int | None:
        if self.duration_sec is None:
            return None
        return int(round(self.duration_sec * self.sample_rate_hz))

    def reset(self) -> None:
        """Rewind to the start of the stream (same seed, same stream)."""
        self._rng = np.random.default_rng(self._seed)
        self._current_sample = 0

    def ms_to_samples(self, ms: float) -> int:
        return max(1, int(ms * self.sample_rate_hz / 1000.0))

    def generate_samples(self, count: int) -> np.ndarray:
        """
        Next ``count`` raw samples with continuous phase.

        Returns
        -------
        np.ndarray
            int16 samples within +/-2048.
        """
        n = np.arange(self._current_sample, self._current_sample + count, dtype=np.float64)
        t = n / self.sample_rate_hz
        signal = np.zeros(count, dtype=np.float64)
        for freq, amplitude in self.components:
            signal += amplitude * np.sin(2.0 * np.pi * freq * t)
        if self.noise_amplitude > 0:
            signal += self._rng.uniform(-self.noise_amplitude, self.noise_amplitude, count)
        self._current_sample += count
        return np.trunc(np.clip(signal, -SENSOR_LIMIT, SENSOR_LIMIT)).astype(np.int16)

    def vendor_band_powers(self, t: float) -> dict[str, int]:
        """Slowly modulated eight-band values, as the 0x83 block carries them."""
        bands = {}
        for name in ASIC_BAND_ORDER:
            base, depth, rate = _BAND_PROFILE[name]
            level = base + depth * math.sin(2.0 * math.pi * rate * t)
            level += float(self._rng.uniform(-0.02, 0.02))
            bands[name] = int(max(0.0, level) * _BAND_UNITS)
        return bands

    def esense_values(self, t: float) -> tuple[int, int, int]:
        """(attention, meditation, quality) at stream time ``t``."""
        if self.signal_quality >= POOR_SIGNAL_NO_CONTACT:
            # Without contact the headset reports zero eSense values
            return 0, 0, self.signal_quality
        attention = round(55 + 25 * math.sin(2.0 * math.pi * 0.03 * t))
        meditation = round(50 + 20 * math.cos(2.0 * math.pi * 0.02 * t))
        return (
            min(max(attention, 0), ESENSE_MAX),
            min(max(meditation, 0), ESENSE_MAX),
            self.signal_quality,
        )

    def summary_packet(self, t: float) -> bytes:
        """The once-per-second packet: quality, eSense and eight bands."""
        attention, meditation, quality = self.esense_values(t)
        payload = encode_esense_payload(attention, meditation, quality)
        payload += encode_bands_payload(self.vendor_band_powers(t))
        return encode_packet(payload)

    def get_next_chunk(self, chunk_size_ms: float = 100.0) -> StreamPacket | None:
        """
        Encode the next chunk of the stream.

        Returns
        -------
        StreamPacket | None
            None once ``duration_sec`` has been streamed.
        """
        count = self.ms_to_samples(chunk_size_ms)
        total = self.n_samples
        if total is not None:
            if self._current_sample >= total:
                return None
            count = min(count, total - self._current_sample)

        start = self._current_sample
        rate = int(self.sample_rate_hz)
        samples = self.generate_samples(count)

        out = bytearray()
        for offset, sample in enumerate(samples):
            index = start + offset
            out += encode_packet(encode_raw_payload((int(sample),)))
            if rate > 0 and (index + 1) % rate == 0:
                out += self.summary_packet((index + 1) / self.sample_rate_hz)

        if self.simulate_realtime:
            time.sleep(count / self.sample_rate_hz)

        return StreamPacket(
            data=bytes(out),
            timestamp=start / self.sample_rate_hz,
            samples=samples,
        )

    def get_chunks(
        self,
        chunk_size_ms: float = 100.0,
    ) -> Generator[StreamPacket, None, None]:
        """
        Yield the whole stream chunk by chunk, starting from the beginning.

        Yields
        ------
        StreamPacket
            Framed bytes plus the samples they encode.
        """
        self.reset()
        while True:
            packet = self.get_next_chunk(chunk_size_ms)
            if packet is None:
                break
            yield packet

    def __repr__(self) -> str:
        duration = "inf" if self.duration_sec is None else f"{self.duration_sec:.2f}s"
        return f"SyntheticHeadset(fs={self.sample_rate_hz:.0f}Hz, duration={duration})"
