"""
Recording Module

Contains the session record types and the SessionRecorder, which writes
chunked raw samples, a metrics log and the session index.
"""

from .models import MetricsLine, SessionMeta, SessionSummary
from .store import (
    SessionRecorder,
    SessionStorageError,
    chunk_filename,
    load_index,
    read_meta,
    read_metrics,
    read_raw_samples,
)

__all__ = [
    "MetricsLine",
    "SessionMeta",
    "SessionSummary",
    "SessionRecorder",
    "SessionStorageError",
    "chunk_filename",
    "load_index",
    "read_meta",
    "read_metrics",
    "read_raw_samples",
]
