"""PeakExtractor: picks candidate note frequencies out of a dB spectrum."""

import numpy as np

from livechord.config import DetectionConfig


class PeakExtractor:
    """
    Finds local maxima inside the musically relevant band.

    Bin ``i`` is a candidate when

        spectrum[i] > spectrum[i - 1]
        spectrum[i] > spectrum[i + 1]
        spectrum[i] > threshold_db

    and its centre frequency lies within ``[low_hz, high_hz]``.

    Peak order
    ----------
    With ``order="ascending"`` (the default) candidates are collected from
    low to high frequency and the list is cut after ``max_peaks`` entries.
    In a dense mix this keeps bass partials and drops strong upper ones,
    which changes the pitch classes the matcher sees. ``order="prominence"``
    keeps the ``max_peaks`` loudest candidates instead; the result is still
    returned in ascending frequency.

    Fewer than two peaks cannot describe a chord, but the extractor returns
    whatever it found and leaves that decision to the caller.
    """

    def __init__(
        self,
        low_hz: float = 80.0,
        high_hz: float = 2000.0,
        threshold_db: float = -50.0,
        max_peaks: int = 6,
        order: str = "ascending",
    ) -> None:
        self.low_hz = low_hz
        self.high_hz = high_hz
        self.threshold_db = threshold_db
        self.max_peaks = max_peaks
        self.order = order

    @classmethod
    def from_config(cls, config: DetectionConfig) -> "PeakExtractor":
        return cls(
            low_hz=config.band_low_hz,
            high_hz=config.band_high_hz,
            threshold_db=config.peak_threshold_db,
            max_peaks=config.max_peaks,
            order=config.peak_order,
        )

    def extract(self, spectrum: np.ndarray, sample_rate: float) -> list[float]:
        """
        Args:
            spectrum:    dB magnitudes, one per bin, covering 0 .. sample_rate / 2.
            sample_rate: Rate of the analysed audio in Hz.

        Returns:
            Peak frequencies in Hz, ascending, at most ``max_peaks`` long.
        """
        n_bins = len(spectrum)
        if n_bins < 3:
            return []

        bin_width = sample_rate / (n_bins * 2)
        inner = spectrum[1:-1]
        is_peak = (
            (inner > spectrum[:-2])
            & (inner > spectrum[2:])
            & (inner > self.threshold_db)
        )
        indices = np.nonzero(is_peak)[0] + 1
        freqs = indices * bin_width
        in_band = (freqs >= self.low_hz) & (freqs <= self.high_hz)
        indices, freqs = indices[in_band], freqs[in_band]

        if self.order == "prominence" and len(indices) > self.max_peaks:
            loudest = np.argsort(spectrum[indices], kind="stable")[::-1][: self.max_peaks]
            freqs = np.sort(freqs[loudest])
        else:
            freqs = freqs[: self.max_peaks]

        return [float(f) for f in freqs]
