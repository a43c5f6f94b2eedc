"""
Validation Module for the Aura EEG Pipeline

Provides analyzer parameter checks, Nyquist checks for the canonical
bands and YAML configuration validation.
"""

from __future__ import annotations

from aura_eeg.validation.input_validators import (
    AnalyzerConfigResult,
    ConfigValidationResult,
    NyquistResult,
    is_power_of_two,
    validate_analyzer_config,
    validate_config_file,
    validate_nyquist,
)

__all__ = [
    "AnalyzerConfigResult",
    "NyquistResult",
    "ConfigValidationResult",
    "is_power_of_two",
    "validate_analyzer_config",
    "validate_nyquist",
    "validate_config_file",
]
