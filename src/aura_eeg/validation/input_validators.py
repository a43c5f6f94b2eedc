"""
Input Validators for the Aura EEG Pipeline

Provides robust validation for:
- Spectral analyzer construction parameters
- Nyquist compliance of the canonical EEG bands
- YAML configuration file parsing

Validators never raise; they return result dataclasses with errors,
warnings and recovery suggestions so callers decide what is fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import operator
from pathlib import Path
from typing import Any

import yaml

from aura_eeg.config import AnalyzerConfig


# =============================================================================
# Validation Result Types
# =============================================================================


@dataclass
class AnalyzerConfigResult:
    """Result of analyzer parameter validation.

    Attributes
    ----------
    is_valid : bool
        True if an analyzer can be built from the parameters.
    config : AnalyzerConfig
        The parameters that were checked.
    effective_hop : int
        Hop length after applying the "None means N" default.
    frequency_resolution_hz : float
        Width of one FFT bin (sample_rate / N).
    warnings : list[str]
        Non-fatal warnings (e.g., coarse frequency resolution).
    errors : list[str]
        Fatal errors (e.g., non-power-of-two window).
    recovery_suggestions : list[str]
        Actionable suggestions for fixing issues.
    """

    is_valid: bool
    config: AnalyzerConfig
    effective_hop: int
    frequency_resolution_hz: float
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    recovery_suggestions: list[str] = field(default_factory=list)


@dataclass
class NyquistResult:
    """Result of Nyquist validation.

    Attributes
    ----------
    is_valid : bool
        True if sampling rate satisfies the Nyquist criterion.
    sampling_rate_hz : float
        The sampling rate being validated.
    max_frequency_hz : float
        Highest frequency the analysis needs.
    nyquist_frequency_hz : float
        Nyquist frequency (sampling_rate / 2).
    oversampling_factor : float
        Ratio of sampling rate to twice the max frequency.
    warnings : list[str]
        Non-fatal warnings (e.g., marginal oversampling).
    errors : list[str]
        Fatal errors (e.g., Nyquist violation).
    recovery_suggestions : list[str]
        Actionable suggestions for fixing issues.
    """

    is_valid: bool
    sampling_rate_hz: float
    max_frequency_hz: float
    nyquist_frequency_hz: float
    oversampling_factor: float
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    recovery_suggestions: list[str] = field(default_factory=list)


@dataclass
class ConfigValidationResult:
    """Result of YAML configuration file validation.

    Attributes
    ----------
    is_valid : bool
        True if config loaded and validated successfully.
    config : dict | None
        Loaded configuration (None if load failed).
    file_path : Path | None
        Path to the config file (None if using defaults).
    warnings : list[str]
        Non-fatal warnings (e.g., missing optional fields).
    errors : list[str]
        Fatal errors (e.g., parse failures).
    recovery_suggestions : list[str]
        Actionable suggestions for fixing issues.
    """

    is_valid: bool
    config: dict[str, Any] | None
    file_path: Path | None
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    recovery_suggestions: list[str] = field(default_factory=list)


# =============================================================================
# Analyzer Parameters
# =============================================================================


def _as_int(value: Any) -> int | None:
    """Plain int for any integer type (including numpy), else None."""
    if isinstance(value, bool):
        return None
    try:
        return operator.index(value)
    except TypeError:
        return None


def is_power_of_two(n: int) -> bool:
    """True for 1, 2, 4, 8, ..."""
    value = _as_int(n)
    return value is not None and value > 0 and (value & (value - 1)) == 0


def validate_analyzer_config(config: AnalyzerConfig) -> AnalyzerConfigResult:
    """
    Check analyzer construction parameters.

    Parameters
    ----------
    config : AnalyzerConfig
        Parameters to validate.

    Returns
    -------
    AnalyzerConfigResult
        ``is_valid`` is False when any parameter would make the analyzer
        unusable.

    Examples
    --------
    >>> validate_analyzer_config(AnalyzerConfig()).is_valid
    True
    >>> validate_analyzer_config(AnalyzerConfig(window_size=500)).errors
    ['WINDOW SIZE: 500 is not a power of two.']
    """
    from aura_eeg.analysis.bands import CANONICAL_BANDS

    warnings = []
    errors = []
    suggestions = []

    n = config.window_size
    if not is_power_of_two(n) or n < 2:
        errors.append(f"WINDOW SIZE: {n} is not a power of two.")
        suggestions.append("Use a window of 256, 512 or 1024 samples.")
        window_ok = False
    else:
        window_ok = True

    hop = n if config.hop_size is None else config.hop_size
    hop_int = _as_int(hop)
    if window_ok and not (hop_int is not None and 1 <= hop_int <= n):
        errors.append(f"HOP SIZE: {hop} must be between 1 and the window size ({n}).")
        suggestions.append(f"Set hop_size to {n} (no overlap) or {n // 2} (50% overlap).")

    if not config.sample_rate_hz > 0:
        errors.append(f"SAMPLE RATE: {config.sample_rate_hz} Hz must be positive.")

    if config.ema_alpha is not None and not 0.0 < config.ema_alpha <= 1.0:
        errors.append(f"EMA ALPHA: {config.ema_alpha} must be in (0, 1].")
        suggestions.append("Use ema_alpha: 0.2, or null to disable smoothing.")

    if not config.full_scale > 0:
        errors.append(f"FULL SCALE: {config.full_scale} must be positive.")
    if not config.power_floor > 0:
        errors.append(f"POWER FLOOR: {config.power_floor} must be positive.")
    if not config.gain_calibration > 0:
        errors.append(f"GAIN: {config.gain_calibration} must be positive.")
    if config.subscriber_queue_size < 0:
        errors.append(
            f"QUEUE SIZE: {config.subscriber_queue_size} must be >= 0 (0 = unbounded)."
        )

    resolution = config.sample_rate_hz / n if window_ok and config.sample_rate_hz > 0 else 0.0
    if resolution > 0:
        narrowest = min(band.width_hz for band in CANONICAL_BANDS)
        if resolution > narrowest:
            warnings.append(
                f"COARSE RESOLUTION: {resolution:.2f} Hz per bin is wider than the "
                f"narrowest band ({narrowest} Hz)."
            )
            suggestions.append("Increase window_size for finer band separation.")

        nyquist = validate_nyquist(config.sample_rate_hz)
        errors.extend(nyquist.errors)
        warnings.extend(nyquist.warnings)
        suggestions.extend(nyquist.recovery_suggestions)

    if config.use_relative and config.power_floor * len(CANONICAL_BANDS) >= 1.0:
        warnings.append(
            f"POWER FLOOR: {config.power_floor} x {len(CANONICAL_BANDS)} bands "
            "leaves no room for relative powers; every band will read 1/8."
        )

    return AnalyzerConfigResult(
        is_valid=len(errors) == 0,
        config=config,
        effective_hop=hop_int if hop_int is not None else _as_int(n) or 0,
        frequency_resolution_hz=resolution,
        warnings=warnings,
        errors=errors,
        recovery_suggestions=suggestions,
    )


# =============================================================================
# Nyquist Validation
# =============================================================================


def validate_nyquist(
    sampling_rate_hz: float,
    max_frequency_hz: float | None = None,
    min_oversampling_factor: float = 2.5,
) -> NyquistResult:
    """
    Validate that the sampling rate can resolve the analysed bands.

    Parameters
    ----------
    sampling_rate_hz : float
        Sampling rate of the raw stream.
    max_frequency_hz : float, optional
        Highest frequency of interest. Default is the upper edge of the
        highest canonical band (mid-gamma, 49.75 Hz).
    min_oversampling_factor : float, optional
        Minimum recommended oversampling factor. Default 2.5.

    Returns
    -------
    NyquistResult
        Validation result with is_valid status and diagnostic info.

    Examples
    --------
    >>> validate_nyquist(512).is_valid
    True
    >>> validate_nyquist(64).is_valid
    False
    """
    if max_frequency_hz is None:
        from aura_eeg.analysis.bands import CANONICAL_BANDS

        max_frequency_hz = max(band.high_hz for band in CANONICAL_BANDS)

    nyquist_freq = sampling_rate_hz / 2.0
    if max_frequency_hz > 0:
        oversampling = sampling_rate_hz / (2.0 * max_frequency_hz)
    else:
        oversampling = float("inf")

    warnings = []
    errors = []
    suggestions = []
    is_valid = True

    if sampling_rate_hz <= 2 * max_frequency_hz:
        is_valid = False
        errors.append(
            f"NYQUIST VIOLATION: Sampling rate ({sampling_rate_hz} Hz) must be "
            f"> 2 * max_frequency ({2 * max_frequency_hz} Hz)."
        )
        suggestions.append(
            f"Increase sampling rate to at least {2.5 * max_frequency_hz:.1f} Hz."
        )
    elif oversampling < min_oversampling_factor:
        warnings.append(
            f"MARGINAL OVERSAMPLING: Sampling rate ({sampling_rate_hz} Hz) "
            f"provides only {oversampling:.2f}x oversampling. "
            f"Recommended minimum is {min_oversampling_factor}x."
        )

    return NyquistResult(
        is_valid=is_valid,
        sampling_rate_hz=sampling_rate_hz,
        max_frequency_hz=max_frequency_hz,
        nyquist_frequency_hz=nyquist_freq,
        oversampling_factor=oversampling,
        warnings=warnings,
        errors=errors,
        recovery_suggestions=suggestions,
    )


# =============================================================================
# Configuration File Validation
# =============================================================================

REQUIRED_CONFIG_SECTIONS = ("analyzer", "broadcast", "recorder", "device")

# section -> param -> (type, min, max, nullable)
CONFIG_TYPE_SPECS: dict[str, dict[str, tuple[type, float, float, bool]]] = {
    "analyzer": {
        "sample_rate_hz": (float, 1.0, 100_000.0, False),
        "window_size": (int, 2, 65_536, False),
        "hop_size": (int, 1, 65_536, True),
        "ema_alpha": (float, 0.0, 1.0, True),
        "gain_calibration": (float, 0.0, 1e6, False),
        "full_scale": (float, 1.0, 1e6, False),
        "power_floor": (float, 1e-12, 1.0, False),
    },
    "broadcast": {
        "subscriber_queue_size": (int, 0, 1_000_000, False),
    },
    "recorder": {
        "chunk_seconds": (int, 1, 3600, False),
    },
    "device": {
        "sample_rate_hz": (float, 1.0, 100_000.0, False),
        "channels": (int, 1, 64, False),
    },
}


def validate_config_file(
    config_path: Path | str | None = None,
    strict: bool = False,
) -> ConfigValidationResult:
    """
    Load and validate a YAML pipeline configuration file.

    Provides graceful error handling with helpful messages for:
    - Missing files (falls back to defaults)
    - Malformed YAML (syntax errors)
    - Invalid parameter values (type/range checks, analyzer constraints)

    Parameters
    ----------
    config_path : Path or str, optional
        Path to YAML config file. If None, uses default_pipeline.yaml.
    strict : bool
        If True, treat warnings as errors. Default False.

    Returns
    -------
    ConfigValidationResult
        Validation result with loaded config and any issues found.

    Examples
    --------
    >>> result = validate_config_file("nonexistent.yaml")
    >>> result.is_valid
    True  # Falls back to defaults
    >>> len(result.warnings) > 0
    True
    """
    from aura_eeg.config import DEFAULT_CONFIG_PATH, get_default_config

    warnings = []
    errors = []
    suggestions = []

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    else:
        config_path = Path(config_path)

    config = None
    file_exists = config_path.exists()

    if not file_exists:
        warnings.append(
            f"CONFIG FILE NOT FOUND: '{config_path}' does not exist. "
            "Using built-in defaults."
        )
        suggestions.append(
            f"Create config file at '{config_path}' or use load_config() without path."
        )
        config = get_default_config()
    else:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
            if config is None:
                warnings.append(
                    f"CONFIG FILE EMPTY: '{config_path}' contains no data. "
                    "Using built-in defaults."
                )
                config = get_default_config()
            elif not isinstance(config, dict):
                errors.append(
                    f"CONFIG ROOT ERROR: '{config_path}' must contain a mapping, "
                    f"got {type(config).__name__}."
                )
                config = get_default_config()
        except yaml.YAMLError as e:
            errors.append(f"YAML PARSE ERROR in '{config_path}': {str(e)}")
            suggestions.append(
                "Check YAML syntax: proper indentation (2 spaces), "
                "colons after keys, no tabs."
            )
            config = get_default_config()
        except IOError as e:
            errors.append(f"FILE READ ERROR for '{config_path}': {str(e)}")
            suggestions.append("Check file permissions and path.")
            config = get_default_config()

    defaults = get_default_config()
    for section in REQUIRED_CONFIG_SECTIONS:
        if not isinstance(config.get(section), dict):
            if strict:
                errors.append(f"MISSING REQUIRED SECTION: '{section}' not found in config.")
            else:
                warnings.append(f"MISSING SECTION: '{section}' not found. Using defaults.")
            config[section] = defaults[section]

    for section, specs in CONFIG_TYPE_SPECS.items():
        for param, (expected_type, min_val, max_val, nullable) in specs.items():
            if param not in config[section]:
                continue
            value = config[section][param]
            if value is None and nullable:
                continue

            accepted = (float, int) if expected_type is float else (expected_type,)
            if isinstance(value, bool) or not isinstance(value, accepted):
                message = (
                    f"{section}.{param} should be {expected_type.__name__}, "
                    f"got {type(value).__name__}"
                )
                if strict:
                    errors.append(f"TYPE ERROR: {message}.")
                    continue
                warnings.append(f"TYPE WARNING: {message}. Attempting conversion.")
                try:
                    value = expected_type(value)
                    config[section][param] = value
                except (ValueError, TypeError):
                    errors.append(
                        f"CONVERSION FAILED: Cannot convert {section}.{param} "
                        f"value '{value}' to {expected_type.__name__}."
                    )
                    continue

            if value < min_val or value > max_val:
                warnings.append(
                    f"RANGE WARNING: {section}.{param}={value} is outside "
                    f"expected range [{min_val}, {max_val}]."
                )

    if not errors:
        analyzer_result = validate_analyzer_config(AnalyzerConfig.from_config(config))
        errors.extend(analyzer_result.errors)
        warnings.extend(analyzer_result.warnings)
        suggestions.extend(analyzer_result.recovery_suggestions)

    is_valid = len(errors) == 0
    if strict:
        is_valid = is_valid and len(warnings) == 0

    return ConfigValidationResult(
        is_valid=is_valid,
        config=config,
        file_path=config_path if file_exists else None,
        warnings=warnings,
        errors=errors,
        recovery_suggestions=suggestions,
    )
