"""
Configuration Management for Aura EEG

Loads pipeline parameters from YAML config files with fallback to
hardcoded defaults, and turns the analyzer / recorder sections into
typed dataclasses.

Usage:
    from aura_eeg.config import load_config, AnalyzerConfig

    cfg = load_config()  # Load default config
    cfg = load_config("configs/custom.yaml")  # Load custom config

    analyzer_cfg = AnalyzerConfig.from_config(cfg)
    window = cfg["analyzer"]["window_size"]
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

# File is at: src/aura_eeg/config.py
# Project root: src/aura_eeg -> src -> project_root
_THIS_FILE = Path(__file__)
PROJECT_ROOT = _THIS_FILE.parent.parent.parent

DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "default_pipeline.yaml"

# NeuroSky TGAM raw output: 512 Hz, 12-bit ADC centred on zero
DEFAULT_SAMPLE_RATE_HZ: int = 512
DEFAULT_FULL_SCALE: float = 2048.0
DEFAULT_POWER_FLOOR: float = 1e-3


def get_config_path(config_name: str = "default_pipeline.yaml") -> Path:
    """
    Get the full path to a config file.

    Parameters
    ----------
    config_name : str
        Name of the config file (with or without .yaml extension).

    Returns
    -------
    Path
        Full path to the config file.
    """
    if not config_name.endswith(".yaml"):
        config_name = f"{config_name}.yaml"
    return PROJECT_ROOT / "configs" / config_name


def get_default_config() -> dict[str, Any]:
    """
    Return hardcoded default configuration.

    Used as fallback when config file is missing.
    """
    return {
        "analyzer": {
            "sample_rate_hz": DEFAULT_SAMPLE_RATE_HZ,
            "window_size": 512,
            "hop_size": 512,
            "use_log10": False,
            "use_relative": True,
            "ema_alpha": 0.2,
            "gain_calibration": 1.0,
            "full_scale": DEFAULT_FULL_SCALE,
            "power_floor": DEFAULT_POWER_FLOOR,
        },
        "broadcast": {
            "subscriber_queue_size": 256,
        },
        "recorder": {
            "base_dir": str(Path.home() / "AuraSessions"),
            "chunk_seconds": 60,
        },
        "device": {
            "name": "MindLink",
            "sample_rate_hz": DEFAULT_SAMPLE_RATE_HZ,
            "channels": 1,
        },
    }


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file with fallback to defaults.

    Parameters
    ----------
    config_path : str or Path, optional
        Path to YAML config file. If None, uses default_pipeline.yaml.
        If file doesn't exist, falls back to hardcoded defaults.

    Returns
    -------
    dict
        Configuration dictionary.

    Raises
    ------
    None
        This function never raises; it gracefully falls back to defaults.

    Examples
    --------
    >>> cfg = load_config()
    >>> cfg["analyzer"]["window_size"]
    512
    """
    config, _ = load_config_safe(config_path)
    return config


def load_config_safe(
    config_path: str | Path | None = None,
) -> tuple[dict[str, Any], list[str]]:
    """
    Load configuration with detailed error reporting.

    Unlike load_config(), this function returns error messages
    for debugging and user feedback. Sections missing from the file are
    filled from the defaults.

    Parameters
    ----------
    config_path : str or Path, optional
        Path to YAML config file.

    Returns
    -------
    tuple[dict, list[str]]
        (config_dict, error_messages). Config is always valid (defaults used on error).
        error_messages is empty if load succeeded.
    """
    errors = []

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        errors.append(f"Config file not found: {config_path}. Using defaults.")
        return get_default_config(), errors

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        errors.append(
            f"YAML parse error in {config_path}: {e}. "
            "Check indentation and syntax. Using defaults."
        )
        return get_default_config(), errors
    except IOError as e:
        errors.append(f"Cannot read {config_path}: {e}. Using defaults.")
        return get_default_config(), errors

    if config is None:
        errors.append(f"Config file is empty: {config_path}. Using defaults.")
        return get_default_config(), errors
    if not isinstance(config, dict):
        errors.append(f"Config root in {config_path} is not a mapping. Using defaults.")
        return get_default_config(), errors

    return _merge_defaults(config), errors


def save_config(config: dict[str, Any], config_path: str | Path) -> None:
    """
    Save configuration to a YAML file.

    Parameters
    ----------
    config : dict
        Configuration dictionary.
    config_path : str or Path
        Output path for the YAML file.
    """
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def _merge_defaults(config: dict[str, Any]) -> dict[str, Any]:
    merged = get_default_config()
    for section, values in config.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


# =============================================================================
# Typed Sections
# =============================================================================


@dataclass(frozen=True)
class AnalyzerConfig:
    """
    Fixed construction parameters of a SpectralAnalyzer.

    Attributes
    ----------
    sample_rate_hz : float
        Raw sample rate. Default 512 Hz.
    window_size : int
        FFT window length N, must be a power of two. Default 512.
    hop_size : int | None
        Samples the window advances after each frame. None means N.
    use_log10 : bool
        Apply base-10 log after flooring. Default False.
    use_relative : bool
        Divide each band by the sum of all bands. Default True.
    ema_alpha : float | None
        EMA smoothing factor, None disables smoothing. Default 0.2.
    gain_calibration : float
        Multiplier applied to every power bin. Default 1.0.
    full_scale : float
        Sensor effective full-scale count used to normalize raw samples.
    power_floor : float
        Smallest value any band may take before the log step.
    subscriber_queue_size : int
        Per-subscriber buffer capacity (0 = unbounded).
    """

    sample_rate_hz: float = float(DEFAULT_SAMPLE_RATE_HZ)
    window_size: int = 512
    hop_size: int | None = None
    use_log10: bool = False
    use_relative: bool = True
    ema_alpha: float | None = 0.2
    gain_calibration: float = 1.0
    full_scale: float = DEFAULT_FULL_SCALE
    power_floor: float = DEFAULT_POWER_FLOOR
    subscriber_queue_size: int = 256

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "AnalyzerConfig":
        """Build from a loaded config dict (``load_config()`` if None)."""
        if config is None:
            config = load_config()
        section = config.get("analyzer", {})
        broadcast = config.get("broadcast", {})
        return cls(
            sample_rate_hz=float(section.get("sample_rate_hz", DEFAULT_SAMPLE_RATE_HZ)),
            window_size=int(section.get("window_size", 512)),
            hop_size=section.get("hop_size"),
            use_log10=bool(section.get("use_log10", False)),
            use_relative=bool(section.get("use_relative", True)),
            ema_alpha=section.get("ema_alpha", 0.2),
            gain_calibration=float(section.get("gain_calibration", 1.0)),
            full_scale=float(section.get("full_scale", DEFAULT_FULL_SCALE)),
            power_floor=float(section.get("power_floor", DEFAULT_POWER_FLOOR)),
            subscriber_queue_size=int(broadcast.get("subscriber_queue_size", 256)),
        )


@dataclass(frozen=True)
class RecorderConfig:
    """Where sessions are written and how raw segments rotate."""

    base_dir: Path = Path.home() / "AuraSessions"
    chunk_seconds: int = 60

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "RecorderConfig":
        """Build from a loaded config dict (``load_config()`` if None)."""
        if config is None:
            config = load_config()
        section = config.get("recorder", {})
        return cls(
            base_dir=Path(section.get("base_dir", Path.home() / "AuraSessions")).expanduser(),
            chunk_seconds=int(section.get("chunk_seconds", 60)),
        )
