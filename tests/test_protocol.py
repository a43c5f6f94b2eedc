"""
ThinkGear Protocol Unit Tests

Validates packet framing, checksum handling, chunk-boundary carry-over
and the payload grammar of the incremental decoder.
"""

from __future__ import annotations

import numpy as np
import pytest

from aura_eeg.protocol import (
    ASIC_BAND_ORDER,
    MAX_PAYLOAD_LENGTH,
    SensorEvent,
    ThinkGearDecoder,
    compute_checksum,
    encode_bands_payload,
    encode_esense_payload,
    encode_packet,
    encode_raw_payload,
    parse_payload,
)

# Documented vendor example: poor signal 0, eight bands, attention 13, meditation 61
VENDOR_PACKET = bytes.fromhex(
    "AAAA20"
    "0200"
    "8318"
    "000094" "000042" "00000B" "000064" "00004D" "00003D" "000007" "000005"
    "040D"
    "053D"
    "34"
)


def _band_values() -> dict[str, int]:
    return {name: (i + 1) * 100_000 + i for i, name in enumerate(ASIC_BAND_ORDER)}


class TestChecksum:
    """Test one's-complement checksum."""

    def test_known_value(self) -> None:
        """~(0x02 + 0x20) & 0xFF == 0xDD."""
        assert compute_checksum(bytes([0x02, 0x20])) == 0xDD

    def test_sum_truncated_to_8_bits(self) -> None:
        """Sums beyond 255 only keep their low byte."""
        payload = bytes([0xFF, 0xFF, 0x03])  # 0x201 -> 0x01
        assert compute_checksum(payload) == 0xFE

    def test_empty_payload(self) -> None:
        assert compute_checksum(b"") == 0xFF

    def test_vendor_example_checksum(self) -> None:
        assert compute_checksum(VENDOR_PACKET[3:-1]) == VENDOR_PACKET[-1]


class TestFraming:
    """Test packet detection, rejection and carry-over."""

    def test_vendor_example_decodes(self) -> None:
        """The documented example packet yields one complete event."""
        events = ThinkGearDecoder().feed(VENDOR_PACKET)

        assert len(events) == 1
        event = events[0]
        assert event.esense.quality == 0
        assert event.esense.attention == 13
        assert event.esense.meditation == 61
        assert event.bands.ordered() == [148, 66, 11, 100, 77, 61, 7, 5]
        assert event.raw is None

    def test_single_raw_packet(self) -> None:
        """AA AA 04 80 02 00 70 0D decodes to raw sample 112."""
        packet = bytes([0xAA, 0xAA, 0x04, 0x80, 0x02, 0x00, 0x70, 0x0D])
        events = ThinkGearDecoder().feed(packet)

        assert len(events) == 1
        assert events[0].raw_samples == (112,)

    @pytest.mark.parametrize("bit", range(8))
    def test_corrupted_checksum_drops_packet(self, bit: int) -> None:
        """Flipping any checksum bit drops the packet without raising."""
        corrupted = bytearray(VENDOR_PACKET)
        corrupted[-1] ^= 1 << bit
        decoder = ThinkGearDecoder()

        assert decoder.feed(bytes(corrupted)) == []
        assert decoder.stats.checksum_errors == 1

    def test_split_at_every_boundary(self) -> None:
        """A packet split across two calls decodes like one delivered whole."""
        expected = ThinkGearDecoder().feed(VENDOR_PACKET)

        for cut in range(len(VENDOR_PACKET) + 1):
            decoder = ThinkGearDecoder()
            events = decoder.feed(VENDOR_PACKET[:cut]) + decoder.feed(VENDOR_PACKET[cut:])
            assert events == expected, f"split at {cut}"
            assert decoder.pending_bytes == 0

    def test_byte_at_a_time(self) -> None:
        """Feeding one byte per call still yields every packet in order."""
        stream = b"".join(
            encode_packet(encode_raw_payload([v])) for v in (-5, 0, 7, 2047)
        )
        decoder = ThinkGearDecoder()
        events = []
        for b in stream:
            events.extend(decoder.feed(bytes([b])))

        assert [e.raw_samples for e in events] == [(-5,), (0,), (7,), (2047,)]

    def test_incomplete_packet_waits(self) -> None:
        """A declared length beyond the buffered bytes is not an error."""
        decoder = ThinkGearDecoder()

        assert decoder.feed(VENDOR_PACKET[:10]) == []
        assert decoder.pending_bytes == 10
        assert decoder.stats.checksum_errors == 0
        assert decoder.stats.malformed == 0

    def test_garbage_before_packet(self) -> None:
        """Leading noise is skipped and counted."""
        noise = bytes([0x00, 0x13, 0xAA, 0x42, 0x99])
        decoder = ThinkGearDecoder()
        events = decoder.feed(noise + VENDOR_PACKET)

        assert len(events) == 1
        assert decoder.stats.bytes_skipped == len(noise)

    def test_extra_sync_bytes(self) -> None:
        """A run of three or more SYNC bytes still frames the packet."""
        events = ThinkGearDecoder().feed(b"\xAA" + VENDOR_PACKET)

        assert len(events) == 1

    def test_oversized_length_resyncs(self) -> None:
        """PLENGTH > 169 (and not SYNC) discards the candidate."""
        bad = bytes([0xAA, 0xAA, MAX_PAYLOAD_LENGTH + 2, 0x01, 0x02])
        decoder = ThinkGearDecoder()
        events = decoder.feed(bad + VENDOR_PACKET)

        assert len(events) == 1
        assert decoder.stats.malformed == 1

    def test_recovers_after_bad_checksum(self) -> None:
        """Decoding resumes with the packet following a corrupted one."""
        corrupted = bytearray(VENDOR_PACKET)
        corrupted[-1] ^= 0xFF
        good = encode_packet(encode_raw_payload([321]))
        events = ThinkGearDecoder().feed(bytes(corrupted) + good)

        assert len(events) == 1
        assert events[0].raw_samples == (321,)

    def test_multiple_packets_one_chunk(self) -> None:
        stream = VENDOR_PACKET + encode_packet(encode_raw_payload([1])) + VENDOR_PACKET
        events = ThinkGearDecoder().feed(stream)

        assert len(events) == 3
        assert events[1].raw_samples == (1,)

    def test_empty_chunk(self) -> None:
        decoder = ThinkGearDecoder()
        assert decoder.feed(b"") == []
        assert decoder.pending_bytes == 0

    def test_random_noise_never_raises(self) -> None:
        """Arbitrary bytes are consumed without exceptions."""
        rng = np.random.default_rng(7)
        decoder = ThinkGearDecoder()
        for _ in range(50):
            decoder.feed(rng.integers(0, 256, size=97, dtype=np.uint8).tobytes())

        # Buffer never holds more than one maximal packet candidate
        assert decoder.pending_bytes <= MAX_PAYLOAD_LENGTH + 4

    def test_reset_clears_state(self) -> None:
        decoder = ThinkGearDecoder()
        decoder.feed(VENDOR_PACKET[:5])
        decoder.reset()

        assert decoder.pending_bytes == 0
        assert decoder.stats.packets == 0


class TestPayloadGrammar:
    """Test parsing of data rows inside a valid payload."""

    def test_negative_raw_sample(self) -> None:
        event = parse_payload(encode_raw_payload([-2048]))
        assert event.raw_samples == (-2048,)

    def test_multiple_raw_rows_aggregate(self) -> None:
        """Several rows in one packet become one event."""
        event = parse_payload(encode_raw_payload([1, -1, 300]))
        assert event.raw_samples == (1, -1, 300)

    def test_band_block_round_trip(self) -> None:
        bands = _band_values()
        event = parse_payload(encode_bands_payload(bands))

        assert dict(event.bands.bands) == bands
        assert event.bands.ordered() == [bands[name] for name in ASIC_BAND_ORDER]

    def test_band_value_is_big_endian(self) -> None:
        payload = bytes([0x83, 24]) + bytes([0x01, 0x02, 0x03]) + bytes(21)
        event = parse_payload(payload)

        assert event.bands.bands["delta"] == 0x010203
        assert event.bands.bands["midGamma"] == 0

    def test_esense_only_present_fields(self) -> None:
        event = parse_payload(encode_esense_payload(attention=80))

        assert event.esense.attention == 80
        assert event.esense.meditation is None
        assert event.esense.quality is None

    def test_blink_strength(self) -> None:
        event = parse_payload(bytes([0x16, 0x7F]))
        assert event.esense.blink_strength == 127

    def test_raw_with_wrong_length_is_dropped(self) -> None:
        """A raw row declaring 3 bytes makes the payload malformed."""
        assert parse_payload(bytes([0x80, 0x03, 0x00, 0x01, 0x02])) is None

    def test_band_block_with_wrong_length_is_dropped(self) -> None:
        assert parse_payload(bytes([0x83, 0x02, 0x00, 0x01])) is None

    def test_value_overrunning_payload_is_dropped(self) -> None:
        assert parse_payload(bytes([0x90, 0x05, 0x00, 0x01])) is None

    def test_missing_single_byte_value_is_dropped(self) -> None:
        assert parse_payload(bytes([0x04])) is None

    def test_unknown_codes_skipped_by_declared_length(self) -> None:
        """Unknown rows are skipped and later rows still parse."""
        payload = bytes([0x33, 0x01, 0x90, 0x02, 0xAB, 0xCD]) + encode_esense_payload(meditation=40)
        event = parse_payload(payload)

        assert event.skipped_codes == (0x33, 0x90)
        assert event.esense.meditation == 40

    def test_rr_interval_skipped(self) -> None:
        event = parse_payload(bytes([0x86, 0x02, 0x01, 0xF4]))

        assert event.is_empty()
        assert event.skipped_codes == (0x86,)

    def test_excode_rows_skipped(self) -> None:
        payload = bytes([0x55, 0x04, 0x10]) + encode_raw_payload([9])
        event = parse_payload(payload)

        assert event.raw_samples == (9,)
        assert event.esense is None

    def test_empty_payload_yields_empty_event(self) -> None:
        assert parse_payload(b"") == SensorEvent()

    def test_malformed_payload_counted_by_decoder(self) -> None:
        decoder = ThinkGearDecoder()
        events = decoder.feed(encode_packet(bytes([0x80, 0x03, 0, 0, 0])))

        assert events == []
        assert decoder.stats.malformed == 1


class TestEncoders:
    """Test frame builders used by the synthetic headset."""

    def test_encode_packet_layout(self) -> None:
        payload = encode_esense_payload(quality=200)
        packet = encode_packet(payload)

        assert packet[:2] == b"\xAA\xAA"
        assert packet[2] == len(payload)
        assert packet[-1] == compute_checksum(payload)

    def test_payload_too_long(self) -> None:
        with pytest.raises(ValueError):
            encode_packet(bytes(MAX_PAYLOAD_LENGTH + 1))

    def test_band_value_too_large(self) -> None:
        with pytest.raises(ValueError):
            encode_bands_payload({"delta": 1 << 24})

    def test_esense_order(self) -> None:
        """Quality precedes attention and meditation, as the headset sends them."""
        payload = encode_esense_payload(attention=1, meditation=2, quality=3)
        assert payload == bytes([0x02, 3, 0x04, 1, 0x05, 2])
