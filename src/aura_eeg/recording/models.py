"""
Session Records

SessionMeta, MetricsLine and SessionSummary plus their JSON encodings.
On-disk keys are camelCase and times are ISO-8601 strings:

    meta.json           {id, startTime, deviceName, sampleRate, channels}
    metrics.jsonl       {timestamp, attention?, meditation?, signalQuality?, powerBands?}
    sessions_index.json [{id, startTime, duration, sampleCount, deviceName, sampleRate, channels}]
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive times are taken as UTC; aware times are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_time(value: datetime) -> str:
    """ISO-8601 with an explicit offset."""
    return as_utc(value).isoformat()


def parse_time(text: str) -> datetime:
    """
    Inverse of format_time; also accepts a trailing 'Z'.

    Raises
    ------
    TypeError
        If ``text`` is not a string.
    ValueError
        If ``text`` is not an ISO-8601 time.
    """
    if not isinstance(text, str):
        raise TypeError(f"expected an ISO-8601 string, got {type(text).__name__}")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


@dataclass(frozen=True)
class SessionMeta:
    """Identity of a recording, written once at start."""

    id: str
    start_time: datetime
    device_name: str
    sample_rate: int
    channels: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startTime": format_time(self.start_time),
            "deviceName": self.device_name,
            "sampleRate": self.sample_rate,
            "channels": self.channels,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionMeta":
        return cls(
            id=str(data["id"]),
            start_time=parse_time(data["startTime"]),
            device_name=str(data["deviceName"]),
            sample_rate=int(data["sampleRate"]),
            channels=int(data.get("channels", 1)),
        )


@dataclass(frozen=True)
class MetricsLine:
    """
    One metrics.jsonl record.

    Attributes
    ----------
    timestamp : datetime
        When the values were observed.
    attention, meditation : int | None
        eSense values, 0-100.
    signal_quality : int | None
        Poor-signal value, 0 (best) .. 200 (no contact).
    power_bands : Mapping[str, int] | None
        Vendor eight-band powers (unsigned 32-bit).
    """

    timestamp: datetime
    attention: int | None = None
    meditation: int | None = None
    signal_quality: int | None = None
    power_bands: Mapping[str, int] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"timestamp": format_time(self.timestamp)}
        if self.attention is not None:
            data["attention"] = int(self.attention)
        if self.meditation is not None:
            data["meditation"] = int(self.meditation)
        if self.signal_quality is not None:
            data["signalQuality"] = int(self.signal_quality)
        if self.power_bands is not None:
            data["powerBands"] = {
                name: int(value) & 0xFFFFFFFF for name, value in self.power_bands.items()
            }
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricsLine":
        bands = data.get("powerBands")
        return cls(
            timestamp=parse_time(data["timestamp"]),
            attention=data.get("attention"),
            meditation=data.get("meditation"),
            signal_quality=data.get("signalQuality"),
            power_bands={k: int(v) for k, v in bands.items()} if bands is not None else None,
        )


@dataclass(frozen=True)
class SessionSummary:
    """Index entry built when a session stops."""

    id: str
    start_time: datetime
    duration: float
    sample_count: int
    device_name: str
    sample_rate: int
    channels: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startTime": format_time(self.start_time),
            "duration": self.duration,
            "sampleCount": self.sample_count,
            "deviceName": self.device_name,
            "sampleRate": self.sample_rate,
            "channels": self.channels,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionSummary":
        return cls(
            id=str(data["id"]),
            start_time=parse_time(data["startTime"]),
            duration=float(data.get("duration", 0.0)),
            sample_count=int(data.get("sampleCount", 0)),
            device_name=str(data.get("deviceName", "")),
            sample_rate=int(data.get("sampleRate", 0)),
            channels=int(data.get("channels", 1)),
        )
