"""
ThinkGear Protocol Constants

Framing bytes, data-row codes and value lengths of the NeuroSky ThinkGear
serial protocol, as emitted by TGAM-based headsets (MindWave, MindLink).

Packet layout::

    [SYNC] [SYNC] [PLENGTH] [PAYLOAD ... PLENGTH bytes] [CHKSUM]

CHKSUM is the one's complement of the low 8 bits of the payload sum.
"""

from __future__ import annotations

# Framing
SYNC_BYTE: int = 0xAA
MAX_PAYLOAD_LENGTH: int = 169  # PLENGTH above this is invalid; 0xAA (170) is a re-sync
HEADER_LENGTH: int = 3  # SYNC SYNC PLENGTH

# Payload structure
EXCODE_BYTE: int = 0x55  # extended-code level prefix
MULTI_BYTE_THRESHOLD: int = 0x80  # codes >= 0x80 carry a VLENGTH byte

# Single-byte value codes (code < 0x80)
CODE_POOR_SIGNAL: int = 0x02  # 0 = good contact, 200 = no contact
CODE_ATTENTION: int = 0x04  # eSense attention, 0-100
CODE_MEDITATION: int = 0x05  # eSense meditation, 0-100
CODE_BLINK_STRENGTH: int = 0x16  # 1-255

# Multi-byte value codes (code >= 0x80)
CODE_RAW_WAVE: int = 0x80  # 2 bytes, big-endian signed
CODE_ASIC_EEG_POWER: int = 0x83  # 8 x 3 bytes, big-endian unsigned
CODE_RRINTERVAL: int = 0x86  # 2 bytes, big-endian unsigned (ms)

RAW_WAVE_LENGTH: int = 2
BAND_VALUE_LENGTH: int = 3
ASIC_EEG_POWER_LENGTH: int = 24

# Declared VLENGTH that known multi-byte codes must carry
FIXED_VALUE_LENGTHS: dict[int, int] = {
    CODE_RAW_WAVE: RAW_WAVE_LENGTH,
    CODE_ASIC_EEG_POWER: ASIC_EEG_POWER_LENGTH,
    CODE_RRINTERVAL: 2,
}

# eSense value ranges
ESENSE_MAX: int = 100
POOR_SIGNAL_NO_CONTACT: int = 200

# Order of the eight 3-byte values inside a 0x83 block
ASIC_BAND_ORDER: tuple[str, ...] = (
    "delta",
    "theta",
    "lowAlpha",
    "highAlpha",
    "lowBeta",
    "highBeta",
    "lowGamma",
    "midGamma",
)
