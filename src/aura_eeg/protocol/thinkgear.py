"""
ThinkGear Stream Decoder

Frames an unreliable serial byte stream into SensorEvents. Bytes may arrive
in arbitrary chunks: a packet split across two feed() calls decodes to the
same event as one delivered whole, because undecoded bytes are carried over
between calls.

Recovery rules:
    - A PLENGTH byte beyond what is buffered means "wait for more input".
    - A checksum mismatch, an invalid PLENGTH or a malformed payload drops
      the candidate packet and scanning resumes for the next SYNC SYNC.
    - Nothing in this module raises on input bytes.

Usage:
    from aura_eeg.protocol.thinkgear import ThinkGearDecoder

    decoder = ThinkGearDecoder()
    for chunk in serial_chunks:
        for event in decoder.feed(chunk):
            handle(event)
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, Mapping

from aura_eeg.protocol.constants import (
    ASIC_BAND_ORDER,
    BAND_VALUE_LENGTH,
    CODE_ASIC_EEG_POWER,
    CODE_ATTENTION,
    CODE_BLINK_STRENGTH,
    CODE_MEDITATION,
    CODE_POOR_SIGNAL,
    CODE_RAW_WAVE,
    EXCODE_BYTE,
    FIXED_VALUE_LENGTHS,
    HEADER_LENGTH,
    MAX_PAYLOAD_LENGTH,
    MULTI_BYTE_THRESHOLD,
    SYNC_BYTE,
)
from aura_eeg.protocol.events import (
    EightBandPowers,
    ESenseValues,
    RawBatch,
    SensorEvent,
)

logger = logging.getLogger(__name__)

_SYNC_PAIR = bytes([SYNC_BYTE, SYNC_BYTE])


def compute_checksum(payload: bytes | bytearray) -> int:
    """One's complement of the 8-bit truncated payload sum."""
    return (~sum(payload)) & 0xFF


@dataclass
class DecoderStats:
    """Running counters for a decoder instance."""

    packets: int = 0
    checksum_errors: int = 0
    malformed: int = 0
    bytes_skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "packets": self.packets,
            "checksum_errors": self.checksum_errors,
            "malformed": self.malformed,
            "bytes_skipped": self.bytes_skipped,
        }


class ThinkGearDecoder:
    """
    Incremental ThinkGear packet decoder.

    Each instance keeps its own carry-over buffer, so one decoder must be
    used per byte stream.

    Attributes
    ----------
    stats : DecoderStats
        Packets decoded and the recoverable errors seen so far.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.stats = DecoderStats()

    def reset(self) -> None:
        """Discard buffered bytes and counters."""
        self._buffer.clear()
        self.stats = DecoderStats()

    @property
    def pending_bytes(self) -> int:
        """Bytes held back waiting for the rest of a packet."""
        return len(self._buffer)

    def feed(self, chunk: bytes | bytearray | memoryview) -> list[SensorEvent]:
        """
        Append a chunk of bytes and return every event completed by it.

        Parameters
        ----------
        chunk : bytes-like
            Any number of bytes, including zero.

        Returns
        -------
        list[SensorEvent]
            One event per valid packet, in stream order.
        """
        buf = self._buffer
        buf.extend(chunk)
        events: list[SensorEvent] = []
        pos = 0

        while True:
            start = buf.find(_SYNC_PAIR, pos)
            if start < 0:
                # A trailing SYNC may be the first half of the next pair
                keep = len(buf) - 1 if buf and buf[-1] == SYNC_BYTE else len(buf)
                self.stats.bytes_skipped += max(0, keep - pos)
                pos = max(pos, keep)
                break

            self.stats.bytes_skipped += start - pos
            length_index = start + 2
            if length_index >= len(buf):
                pos = start
                break

            plength = buf[length_index]
            if plength == SYNC_BYTE:
                # Extra SYNC byte: the pair starts one byte later
                pos = start + 1
                continue
            if plength > MAX_PAYLOAD_LENGTH:
                self.stats.malformed += 1
                logger.debug(f"Invalid PLENGTH {plength} at offset {start}, resyncing")
                pos = start + 2
                continue

            end = start + HEADER_LENGTH + plength + 1
            if end > len(buf):
                pos = start
                break

            payload = bytes(buf[start + HEADER_LENGTH:end - 1])
            checksum = buf[end - 1]
            expected = compute_checksum(payload)
            if checksum != expected:
                self.stats.checksum_errors += 1
                logger.debug(
                    f"Checksum mismatch: expected 0x{expected:02X}, got 0x{checksum:02X}"
                )
                pos = start + 2
                continue

            event = parse_payload(payload)
            if event is None:
                self.stats.malformed += 1
                logger.debug(f"Malformed payload dropped ({plength} bytes)")
            else:
                self.stats.packets += 1
                events.append(event)
            pos = end

        del buf[:pos]
        return events

    def __repr__(self) -> str:
        return (
            f"ThinkGearDecoder(packets={self.stats.packets}, "
            f"checksum_errors={self.stats.checksum_errors}, "
            f"pending={self.pending_bytes})"
        )


def parse_payload(payload: bytes) -> SensorEvent | None:
    """
    Parse the data rows of one checksum-valid payload.

    Codes below 0x80 carry one value byte; codes from 0x80 up carry a
    VLENGTH byte followed by that many value bytes. Known multi-byte codes
    must declare their fixed length.

    Parameters
    ----------
    payload : bytes
        Payload bytes, without header or checksum.

    Returns
    -------
    SensorEvent | None
        Aggregated event, or None if the payload is malformed.
    """
    n = len(payload)
    i = 0
    raw: list[int] = []
    bands: dict[str, int] | None = None
    esense: dict[str, int] = {}
    skipped: list[int] = []

    while i < n:
        excode_level = 0
        while i < n and payload[i] == EXCODE_BYTE:
            excode_level += 1
            i += 1
        if i >= n:
            return None

        code = payload[i]
        i += 1

        if code < MULTI_BYTE_THRESHOLD:
            if i >= n:
                return None
            value = payload[i]
            i += 1
            if excode_level:
                skipped.append(code)
            elif code == CODE_POOR_SIGNAL:
                esense["quality"] = value
            elif code == CODE_ATTENTION:
                esense["attention"] = value
            elif code == CODE_MEDITATION:
                esense["meditation"] = value
            elif code == CODE_BLINK_STRENGTH:
                esense["blink_strength"] = value
            else:
                skipped.append(code)
            continue

        if i >= n:
            return None
        vlength = payload[i]
        i += 1
        if i + vlength > n:
            return None
        value_bytes = payload[i:i + vlength]
        i += vlength

        if excode_level:
            skipped.append(code)
            continue
        fixed = FIXED_VALUE_LENGTHS.get(code)
        if fixed is not None and vlength != fixed:
            return None

        if code == CODE_RAW_WAVE:
            raw.append(int.from_bytes(value_bytes, "big", signed=True))
        elif code == CODE_ASIC_EEG_POWER:
            bands = _decode_band_block(value_bytes)
        else:
            skipped.append(code)

    return SensorEvent(
        raw=RawBatch(tuple(raw)) if raw else None,
        bands=EightBandPowers(bands) if bands is not None else None,
        esense=ESenseValues(**esense) if esense else None,
        skipped_codes=tuple(skipped),
    )


def _decode_band_block(block: bytes) -> dict[str, int]:
    return {
        name: int.from_bytes(
            block[k * BAND_VALUE_LENGTH:(k + 1) * BAND_VALUE_LENGTH], "big"
        )
        for k, name in enumerate(ASIC_BAND_ORDER)
    }


# =============================================================================
# Encoding
# =============================================================================


def encode_packet(payload: bytes | bytearray) -> bytes:
    """
    Frame a payload as SYNC SYNC PLENGTH PAYLOAD CHKSUM.

    Raises
    ------
    ValueError
        If the payload is longer than 169 bytes.
    """
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise ValueError(
            f"payload length {len(payload)} exceeds {MAX_PAYLOAD_LENGTH} bytes"
        )
    return _SYNC_PAIR + bytes([len(payload)]) + bytes(payload) + bytes([compute_checksum(payload)])


def encode_raw_payload(samples: Iterable[int]) -> bytes:
    """One 0x80 row per sample, big-endian signed 16-bit."""
    out = bytearray()
    for sample in samples:
        out += bytes([CODE_RAW_WAVE, 2])
        out += int(sample).to_bytes(2, "big", signed=True)
    return bytes(out)


def encode_bands_payload(bands: Mapping[str, int]) -> bytes:
    """A 0x83 row holding the eight bands in canonical order."""
    out = bytearray([CODE_ASIC_EEG_POWER, len(ASIC_BAND_ORDER) * BAND_VALUE_LENGTH])
    for name in ASIC_BAND_ORDER:
        value = int(bands.get(name, 0))
        if not 0 <= value < 1 << 24:
            raise ValueError(f"band {name}={value} does not fit in 3 bytes")
        out += value.to_bytes(BAND_VALUE_LENGTH, "big")
    return bytes(out)


def encode_esense_payload(
    attention: int | None = None,
    meditation: int | None = None,
    quality: int | None = None,
) -> bytes:
    """Single-byte rows for whichever eSense values are given."""
    out = bytearray()
    for code, value in (
        (CODE_POOR_SIGNAL, quality),
        (CODE_ATTENTION, attention),
        (CODE_MEDITATION, meditation),
    ):
        if value is not None:
            out += bytes([code, int(value) & 0xFF])
    return bytes(out)
