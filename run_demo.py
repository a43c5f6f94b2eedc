#!/usr/bin/env python
"""
Aura EEG - One-Click Demo

Streams a synthetic ThinkGear headset through the full pipeline
(decoder -> spectral analyzer -> session recorder), prints the band-power
frames as they are emitted and records the run as a session.

Usage:
    python run_demo.py
    python run_demo.py --seconds 30 --sessions-dir /tmp/aura --log10

Requirements:
    - numpy, scipy, pyyaml
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path

# Allow running from a source checkout without installing
sys.path.insert(0, str(Path(__file__).parent / "src"))

from aura_eeg.analysis import BAND_NAMES, SpectralAnalyzer  # noqa: E402
from aura_eeg.config import AnalyzerConfig, RecorderConfig, load_config  # noqa: E402
from aura_eeg.pipeline import EEGPipeline  # noqa: E402
from aura_eeg.recording import SessionRecorder, read_raw_samples  # noqa: E402
from aura_eeg.simulation import SyntheticHeadset  # noqa: E402
from aura_eeg.validation import validate_config_file  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Aura EEG synthetic pipeline demo")
    parser.add_argument("--config", default=None, help="Pipeline YAML config")
    parser.add_argument("--seconds", type=float, default=10.0, help="Seconds to stream")
    parser.add_argument("--sessions-dir", default=None, help="Override recorder base_dir")
    parser.add_argument("--seed", type=int, default=0, help="Noise seed")
    parser.add_argument("--log10", action="store_true", help="Emit log10 band powers")
    parser.add_argument("--realtime", action="store_true", help="Stream at sensor pace")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def print_frames(subscription) -> None:
    """Print band frames until the subscription closes."""
    header = " ".join(f"{name:>9}" for name in BAND_NAMES)
    print(f"  {'#':>4} {'source':>8} {header}")
    for frame in subscription:
        values = " ".join(f"{frame.bands[name]:9.4f}" for name in BAND_NAMES)
        print(f"  {frame.index:>4} {frame.source:>8} {values}")


def main(argv: list[str] | None = None) -> int:
    """Run the synthetic pipeline demo."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print()
    print("=" * 60)
    print("  AURA EEG PIPELINE")
    print("  Synthetic ThinkGear Headset Demo")
    print("=" * 60)
    print()

    validation = validate_config_file(args.config)
    for warning in validation.warnings:
        print(f"  WARNING: {warning}")
    if not validation.is_valid:
        for error in validation.errors:
            print(f"  ERROR: {error}")
        for suggestion in validation.recovery_suggestions:
            print(f"  -> {suggestion}")
        return 1

    config = load_config(args.config)
    if args.log10:
        config["analyzer"]["use_log10"] = True
        config["analyzer"]["use_relative"] = False
    if args.sessions_dir:
        config["recorder"]["base_dir"] = args.sessions_dir

    analyzer = SpectralAnalyzer.from_config(AnalyzerConfig.from_config(config))
    recorder = SessionRecorder.from_config(RecorderConfig.from_config(config))
    headset = SyntheticHeadset(
        sample_rate_hz=float(config["device"]["sample_rate_hz"]),
        duration_sec=args.seconds,
        seed=args.seed,
        simulate_realtime=args.realtime,
    )
    print(f"  Source:   {headset}")
    print(f"  Analyzer: {analyzer}")
    print(f"  Sessions: {recorder.base_dir}")
    print()

    with EEGPipeline(
        analyzer=analyzer,
        recorder=recorder,
        device_name="SyntheticHeadset",
        sample_rate=int(headset.sample_rate_hz),
    ) as pipeline:
        printer = threading.Thread(
            target=print_frames, args=(pipeline.subscribe_bands(maxsize=0),), daemon=True
        )
        printer.start()

        meta = pipeline.start_recording()
        for packet in headset.get_chunks(chunk_size_ms=100):
            pipeline.feed(packet.data)
        summary = pipeline.stop_recording()
        status = pipeline.get_status()

    printer.join(timeout=5)

    print()
    print(f"  Decoder:  {status['decoder']}")
    if summary is not None:
        samples = read_raw_samples(recorder.session_dir(meta.id))
        print(f"  Session:  {summary.id}")
        print(f"            {summary.sample_count} samples, {summary.duration:.2f}s")
        print(f"            {samples.size} samples read back from raw chunks")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
