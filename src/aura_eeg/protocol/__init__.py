"""
Protocol Module

Contains ThinkGear framing constants, the SensorEvent variant types and
the incremental byte-stream decoder (plus encoders for building frames).
"""

from .constants import ASIC_BAND_ORDER, SYNC_BYTE, MAX_PAYLOAD_LENGTH
from .events import (
    EightBandPowers,
    ESenseValues,
    RawBatch,
    SensorEvent,
)
from .thinkgear import (
    DecoderStats,
    ThinkGearDecoder,
    compute_checksum,
    encode_bands_payload,
    encode_esense_payload,
    encode_packet,
    encode_raw_payload,
    parse_payload,
)

__all__ = [
    "ASIC_BAND_ORDER",
    "SYNC_BYTE",
    "MAX_PAYLOAD_LENGTH",
    "EightBandPowers",
    "ESenseValues",
    "RawBatch",
    "SensorEvent",
    "DecoderStats",
    "ThinkGearDecoder",
    "compute_checksum",
    "encode_bands_payload",
    "encode_esense_payload",
    "encode_packet",
    "encode_raw_payload",
    "parse_payload",
]
