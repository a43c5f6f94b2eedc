"""
Session Recorder - Chunked Raw + Metrics Persistence

Every session gets its own directory under the base directory:

    <base_dir>/
        sessions_index.json          summaries, newest first
        <session-id>/
            meta.json
            metrics.jsonl
            raw/chunk_000000.bin     little-endian int16, sample_rate * 60 per chunk
            raw/chunk_000001.bin
            ...

All file I/O runs on a single worker thread, which also owns the state of
the open session. start() and stop() wait for the worker; raw and metrics
appends return immediately, and their failures are logged and reported
when the session stops.

Usage:
    from aura_eeg.recording import SessionRecorder

    recorder = SessionRecorder("~/AuraSessions")
    meta = recorder.start("MindLink", sample_rate=512)
    recorder.append_raw_samples(samples)
    summary = recorder.stop()
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
import json
import logging
import os
from pathlib import Path
import tempfile
import threading
from typing import Any, BinaryIO, Iterable, Iterator, TextIO
import uuid

import numpy as np

from aura_eeg.config import RecorderConfig
from aura_eeg.recording.models import (
    MetricsLine,
    SessionMeta,
    SessionSummary,
    as_utc,
    utc_now,
)

logger = logging.getLogger(__name__)

INDEX_FILENAME = "sessions_index.json"
META_FILENAME = "meta.json"
METRICS_FILENAME = "metrics.jsonl"
RAW_DIRNAME = "raw"
RAW_DTYPE = np.dtype("<i2")

_INT16_MIN = -32768
_INT16_MAX = 32767


class SessionStorageError(OSError):
    """
    A session could not be opened or closed cleanly.

    Attributes
    ----------
    summary : SessionSummary | None
        Summary of the stopped session when one could still be built.
    """

    def __init__(self, message: str, summary: SessionSummary | None = None) -> None:
        super().__init__(message)
        self.summary = summary


def chunk_filename(index: int) -> str:
    return f"chunk_{index:06d}.bin"


@dataclass
class _OpenSession:
    """State of the active session; only touched on the I/O worker."""

    meta: SessionMeta
    folder: Path
    raw_folder: Path
    metrics_file: TextIO
    chunk_file: BinaryIO
    samples_per_chunk: int
    chunk_index: int = 0
    samples_in_chunk: int = 0
    total_samples: int = 0
    metrics_lines: int = 0
    failed_writes: int = 0
    first_error: str | None = None


class SessionRecorder:
    """
    Idle -> Recording -> Idle session writer.

    Parameters
    ----------
    base_dir : str or Path, optional
        Root directory for sessions. Default ``~/AuraSessions``.
    chunk_seconds : int
        Seconds of raw samples per chunk file. Default 60.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        chunk_seconds: int = 60,
    ) -> None:
        if chunk_seconds < 1:
            raise ValueError(f"chunk_seconds must be >= 1, got {chunk_seconds}")
        if base_dir is None:
            base_dir = RecorderConfig().base_dir
        self.base_dir = Path(base_dir).expanduser()
        self.chunk_seconds = chunk_seconds

        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="SessionRecorder-IO"
        )
        self._lock = threading.Lock()
        self._meta: SessionMeta | None = None
        self._observed_samples = 0
        self._current: _OpenSession | None = None

    @classmethod
    def from_config(cls, config: RecorderConfig | None = None) -> "SessionRecorder":
        if config is None:
            config = RecorderConfig.from_config()
        return cls(config.base_dir, config.chunk_seconds)

    @property
    def index_path(self) -> Path:
        return self.base_dir / INDEX_FILENAME

    @property
    def is_recording(self) -> bool:
        return self._meta is not None

    @property
    def current_session(self) -> SessionMeta | None:
        return self._meta

    def session_dir(self, session_id: str) -> Path:
        return self.base_dir / session_id

    # =========================================================================
    # Synchronous boundary
    # =========================================================================

    def start(
        self,
        device_name: str,
        sample_rate: int = 512,
        channels: int = 1,
        start_time: datetime | None = None,
    ) -> SessionMeta:
        """
        Open a new session and write its meta.json.

        Calling start() while a session is open leaves that session
        untouched and returns its SessionMeta.

        Raises
        ------
        SessionStorageError
            If the session directory or its files cannot be created.
        """
        with self._lock:
            if self._meta is not None:
                logger.warning(
                    f"start() ignored: session {self._meta.id} is already recording"
                )
                return self._meta

            meta = SessionMeta(
                id=str(uuid.uuid4()),
                start_time=as_utc(start_time) if start_time else utc_now(),
                device_name=device_name,
                sample_rate=int(sample_rate),
                channels=int(channels),
            )
            self._executor.submit(self._open_session, meta).result()
            self._meta = meta
            self._observed_samples = 0

        logger.info(f"Recording started: session {meta.id} ({device_name}, {sample_rate} Hz)")
        return meta

    def stop(self, end_time: datetime | None = None) -> SessionSummary | None:
        """
        Close the open session and add it to the index.

        Returns
        -------
        SessionSummary | None
            None if no session was open.

        Raises
        ------
        SessionStorageError
            If closing files or rewriting the index failed, or if any
            asynchronous append failed during the session. The error
            carries the summary.
        """
        with self._lock:
            if self._meta is None:
                return None
            future = self._executor.submit(
                self._close_session,
                as_utc(end_time) if end_time else utc_now(),
                self._observed_samples,
            )
            self._meta = None
            summary = future.result()

        logger.info(
            f"Recording stopped: session {summary.id}, {summary.sample_count} samples, "
            f"{summary.duration:.1f}s"
        )
        return summary

    def load_index(self) -> list[SessionSummary]:
        """Stored summaries, newest first; [] if the index cannot be read."""
        return self._executor.submit(self._read_index).result()

    def close(self) -> None:
        """Stop any open session and shut down the I/O worker."""
        try:
            if self.is_recording:
                self.stop()
        finally:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "SessionRecorder":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def get_status(self) -> dict[str, Any]:
        """Current recorder status."""
        meta = self._meta
        current = self._current
        return {
            "recording": meta is not None,
            "session_id": meta.id if meta else None,
            "observed_samples": self._observed_samples,
            "written_samples": current.total_samples if current else 0,
            "failed_writes": current.failed_writes if current else 0,
            "base_dir": str(self.base_dir),
        }

    # =========================================================================
    # Asynchronous appends
    # =========================================================================

    def append_raw_samples(self, samples: Iterable[int] | np.ndarray) -> bool:
        """
        Queue raw samples for writing; returns False when not recording.

        Values are stored as little-endian int16 (out-of-range values are
        clipped).
        """
        if self._meta is None:
            return False
        data = np.asarray(
            samples if isinstance(samples, np.ndarray) else list(samples)
        )
        if data.size == 0:
            return True
        data = np.clip(data, _INT16_MIN, _INT16_MAX).astype(RAW_DTYPE)
        with self._lock:
            if self._meta is None:
                return False
            self._observed_samples += data.size
            self._executor.submit(self._write_raw, data)
        return True

    def append_metrics(self, line: MetricsLine) -> bool:
        """Queue one metrics line; returns False when not recording."""
        with self._lock:
            if self._meta is None:
                return False
            self._executor.submit(self._write_metrics, line)
        return True

    # =========================================================================
    # Worker-side operations
    # =========================================================================

    def _open_session(self, meta: SessionMeta) -> None:
        folder = self.session_dir(meta.id)
        raw_folder = folder / RAW_DIRNAME
        try:
            raw_folder.mkdir(parents=True, exist_ok=True)
            _atomic_write_json(folder / META_FILENAME, meta.to_dict())
            metrics_file = open(folder / METRICS_FILENAME, "w", encoding="utf-8")
            try:
                chunk_file = open(raw_folder / chunk_filename(0), "wb")
            except OSError:
                metrics_file.close()
                raise
        except OSError as e:
            logger.error(f"Cannot create session {meta.id} in {folder}: {e}", exc_info=True)
            raise SessionStorageError(f"cannot create session in {folder}: {e}") from e

        self._current = _OpenSession(
            meta=meta,
            folder=folder,
            raw_folder=raw_folder,
            metrics_file=metrics_file,
            chunk_file=chunk_file,
            samples_per_chunk=max(1, meta.sample_rate * self.chunk_seconds),
        )

    def _write_raw(self, data: np.ndarray) -> None:
        cur = self._current
        if cur is None:
            logger.debug(f"Dropping {data.size} raw samples: no open session")
            return
        try:
            offset = 0
            while offset < data.size:
                if cur.samples_in_chunk >= cur.samples_per_chunk:
                    self._rotate_chunk(cur)
                take = min(cur.samples_per_chunk - cur.samples_in_chunk, data.size - offset)
                cur.chunk_file.write(data[offset:offset + take].tobytes())
                cur.samples_in_chunk += take
                cur.total_samples += take
                offset += take
        except (OSError, ValueError) as e:
            self._record_failure(cur, f"raw append failed: {e}")

    def _rotate_chunk(self, cur: _OpenSession) -> None:
        # Open the next chunk first; if that fails the current chunk stays
        # full and open, and rotation is retried on the next append.
        next_index = cur.chunk_index + 1
        next_file = open(cur.raw_folder / chunk_filename(next_index), "wb")
        previous, cur.chunk_file = cur.chunk_file, next_file
        cur.chunk_index = next_index
        cur.samples_in_chunk = 0
        previous.close()
        logger.debug(f"Session {cur.meta.id}: rotated to chunk {cur.chunk_index}")

    def _write_metrics(self, line: MetricsLine) -> None:
        cur = self._current
        if cur is None:
            return
        try:
            cur.metrics_file.write(json.dumps(line.to_dict(), separators=(",", ":")) + "\n")
            cur.metrics_file.flush()
            cur.metrics_lines += 1
        except (OSError, TypeError, ValueError) as e:
            self._record_failure(cur, f"metrics append failed: {e}")

    def _record_failure(self, cur: _OpenSession, message: str) -> None:
        cur.failed_writes += 1
        if cur.first_error is None:
            cur.first_error = message
            logger.error(f"Session {cur.meta.id}: {message}", exc_info=True)
        else:
            logger.warning(f"Session {cur.meta.id}: {message}")

    def _close_session(self, end_time: datetime, observed_samples: int) -> SessionSummary:
        cur = self._current
        self._current = None
        if cur is None:
            raise SessionStorageError("no open session to close")

        problems: list[str] = []
        for handle in (cur.chunk_file, cur.metrics_file):
            try:
                handle.close()
            except OSError as e:
                problems.append(f"close failed: {e}")

        # Fall back to the caller-side count when writes were lost
        sample_count = cur.total_samples
        if cur.failed_writes or problems:
            sample_count = max(sample_count, observed_samples)

        summary = SessionSummary(
            id=cur.meta.id,
            start_time=cur.meta.start_time,
            duration=max(0.0, (end_time - cur.meta.start_time).total_seconds()),
            sample_count=sample_count,
            device_name=cur.meta.device_name,
            sample_rate=cur.meta.sample_rate,
            channels=cur.meta.channels,
        )

        entries = [s for s in self._read_index() if s.id != summary.id]
        entries.append(summary)
        entries.sort(key=lambda s: s.start_time, reverse=True)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write_json(self.index_path, [s.to_dict() for s in entries])
        except OSError as e:
            logger.error(f"Cannot rewrite {self.index_path}: {e}", exc_info=True)
            problems.append(f"index write failed: {e}")

        if cur.failed_writes:
            problems.append(
                f"{cur.failed_writes} asynchronous writes failed (first: {cur.first_error})"
            )
        if problems:
            raise SessionStorageError(
                f"session {summary.id} closed with errors: " + "; ".join(problems),
                summary=summary,
            )
        return summary

    def _read_index(self) -> list[SessionSummary]:
        return load_index(self.base_dir)


def _atomic_write_json(path: Path, payload: Any) -> None:
    """Write JSON to a temp file in the same directory, then replace ``path``."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


# =============================================================================
# Readers
# =============================================================================


def load_index(base_dir: str | Path) -> list[SessionSummary]:
    """
    Read ``sessions_index.json`` without a recorder.

    Returns [] when the index is missing or unreadable.
    """
    path = Path(base_dir).expanduser() / INDEX_FILENAME
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            summaries = [SessionSummary.from_dict(item) for item in json.load(f)]
    except (OSError, ValueError, TypeError, KeyError, AttributeError) as e:
        logger.warning(f"Cannot read session index {path}: {e}")
        return []
    return sorted(summaries, key=lambda s: s.start_time, reverse=True)


def read_meta(session_dir: str | Path) -> SessionMeta:
    with open(Path(session_dir) / META_FILENAME, "r", encoding="utf-8") as f:
        return SessionMeta.from_dict(json.load(f))


def read_raw_samples(session_dir: str | Path) -> np.ndarray:
    """
    Concatenate every raw chunk of a session, in chunk order.

    Returns
    -------
    np.ndarray
        int16 samples in recording order.
    """
    raw_folder = Path(session_dir) / RAW_DIRNAME
    chunks = sorted(raw_folder.glob("chunk_*.bin"))
    if not chunks:
        return np.zeros(0, dtype=np.int16)
    parts = [np.fromfile(chunk, dtype=RAW_DTYPE) for chunk in chunks]
    return np.concatenate(parts).astype(np.int16)


def read_metrics(session_dir: str | Path) -> Iterator[MetricsLine]:
    """Yield metrics lines in file order, skipping lines that fail to parse."""
    path = Path(session_dir) / METRICS_FILENAME
    if not path.exists():
        return
    with open(path, "r", encoding="utf-8") as f:
        for lineno, text in enumerate(f, start=1):
            text = text.strip()
            if not text:
                continue
            try:
                yield MetricsLine.from_dict(json.loads(text))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"{path}:{lineno}: skipping unreadable metrics line ({e})")

