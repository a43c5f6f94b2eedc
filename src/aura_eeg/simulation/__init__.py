"""
Simulation Module

Contains the synthetic ThinkGear headset used in place of hardware.
"""

from .synthetic import DEFAULT_COMPONENTS, SENSOR_LIMIT, StreamPacket, SyntheticHeadset

__all__ = [
    "DEFAULT_COMPONENTS",
    "SENSOR_LIMIT",
    "StreamPacket",
    "SyntheticHeadset",
]
