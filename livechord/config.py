"""DetectionConfig: tuning knobs shared by the analysis pipeline and scheduler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Final, Mapping

logger = logging.getLogger(__name__)

PEAK_ORDERS: Final[set[str]] = {"ascending", "prominence"}
TIE_BREAKS: Final[set[str]] = {"first", "fewest-notes", "most-recent"}


@dataclass(frozen=True)
class DetectionConfig:
    """
    Immutable set of detection options.

    Attributes:
        sample_window_size:   FFT window length in samples (power of two).
        smoothing:            Exponential smoothing constant applied across
                              consecutive spectra, in [0, 1).
        peak_threshold_db:    Minimum log-magnitude for a bin to count as a peak.
        band_low_hz:          Lowest frequency considered for peaks.
        band_high_hz:         Highest frequency considered for peaks.
        max_peaks:            Number of peaks kept per tick.
        tick_interval_ms:     Period of the detection timer.
        min_template_matches: Pitch classes a template must share with the
                              observation before it can be reported.
        sample_rate:          Capture rate requested from live input devices.
        peak_order:           "ascending" keeps the lowest ``max_peaks``
                              candidates, "prominence" keeps the loudest.
        tie_break:            Template tie-break policy name.
        min_confidence:       Weighted match confidence a chord needs before
                              it is reported, in [0, 1]. 0 reports every
                              template match.
    """

    sample_window_size: int = 4096
    smoothing: float = 0.8
    peak_threshold_db: float = -50.0
    band_low_hz: float = 80.0
    band_high_hz: float = 2000.0
    max_peaks: int = 6
    tick_interval_ms: int = 1000
    min_template_matches: int = 2
    sample_rate: int = 44100
    peak_order: str = "ascending"
    tie_break: str = "first"
    min_confidence: float = 0.0

    def __post_init__(self) -> None:
        window = self.sample_window_size
        if window < 32 or window & (window - 1):
            raise ValueError(f"sample_window_size must be a power of two >= 32, got {window}.")
        if not 0.0 <= self.smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {self.smoothing}.")
        if self.band_low_hz < 0 or self.band_low_hz >= self.band_high_hz:
            raise ValueError(
                f"Invalid band {self.band_low_hz}-{self.band_high_hz} Hz: low must be below high."
            )
        if self.max_peaks < 1:
            raise ValueError(f"max_peaks must be positive, got {self.max_peaks}.")
        if self.tick_interval_ms <= 0:
            raise ValueError(f"tick_interval_ms must be positive, got {self.tick_interval_ms}.")
        if self.min_template_matches < 1:
            raise ValueError(
                f"min_template_matches must be positive, got {self.min_template_matches}."
            )
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}.")
        if self.peak_order not in PEAK_ORDERS:
            supported = ", ".join(sorted(PEAK_ORDERS))
            raise ValueError(f"Unsupported peak order '{self.peak_order}'. Use one of: {supported}.")
        if self.tie_break not in TIE_BREAKS:
            supported = ", ".join(sorted(TIE_BREAKS))
            raise ValueError(f"Unsupported tie break '{self.tie_break}'. Use one of: {supported}.")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be in [0, 1], got {self.min_confidence}.")

    @property
    def tick_interval(self) -> float:
        """Timer period in seconds."""
        return self.tick_interval_ms / 1000.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> DetectionConfig:
        """
        Build a config from a plain mapping such as a parsed JSON file.

        Both snake_case and the camelCase option names used by the editor
        (``sampleWindowSize``, ``peakThresholdDb``, ...) are accepted.
        Unknown keys are logged and ignored.
        """
        known = {f.name for f in fields(cls)}
        aliases = {_camel(name): name for name in known}
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            name = key if key in known else aliases.get(key)
            if name is None:
                logger.warning("Ignoring unknown detection option %r", key)
                continue
            kwargs[name] = value
        return cls(**kwargs)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
