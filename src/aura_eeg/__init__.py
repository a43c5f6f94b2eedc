"""
Aura EEG - Real-Time Biosignal Pipeline

This package contains the production implementations for:
- Protocol: ThinkGear packet framing and SensorEvent decoding
- Analysis: Windowed band-power spectra and multi-subscriber broadcast
- Recording: Chunked session persistence and the session index
- Simulation: Synthetic headset producing ThinkGear byte streams
- Validation: Analyzer parameter and configuration checks

Usage:
    # After installing with: pip install -e .
    from aura_eeg.protocol import ThinkGearDecoder
    from aura_eeg.analysis import SpectralAnalyzer
    from aura_eeg.recording import SessionRecorder
    from aura_eeg.pipeline import EEGPipeline
    from aura_eeg.config import load_config
"""

__version__ = "0.1.0"
__all__ = ["protocol", "analysis", "recording", "simulation", "validation", "pipeline", "config"]
