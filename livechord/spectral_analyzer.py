"""SpectralAnalyzer: turns a window of recent samples into a smoothed dB spectrum."""

import numpy as np

from livechord.config import DetectionConfig

# Floor applied before the log so silent bins give a finite dB value.
_MAGNITUDE_FLOOR = 1e-12


class SpectralAnalyzer:
    """
    Short-time Fourier analysis with exponential smoothing across windows.

    Each call to ``analyze()`` takes the most recent ``window_size`` samples,
    applies a Blackman window, and computes the magnitude spectrum. The
    linear magnitudes are blended with the previous call's result:

        smoothed[k] = smoothing * previous[k] + (1 - smoothing) * |X[k]|

    and the smoothed values are returned in decibels. The returned array has
    ``window_size // 2`` bins covering ``0 .. sample_rate / 2`` Hz, so bin
    ``i`` is centred on ``i * sample_rate / window_size``.

    The smoothing state is the only thing the analyzer keeps between calls.
    """

    def __init__(self, window_size: int = 4096, smoothing: float = 0.8) -> None:
        """
        Args:
            window_size: Number of samples analysed per call.
            smoothing:   Weight of the previous spectrum, in [0, 1).
        """
        self.window_size = window_size
        self.smoothing = smoothing
        self._window = np.blackman(window_size)
        self._previous: np.ndarray | None = None

    @classmethod
    def from_config(cls, config: DetectionConfig) -> "SpectralAnalyzer":
        return cls(window_size=config.sample_window_size, smoothing=config.smoothing)

    @property
    def bin_count(self) -> int:
        return self.window_size // 2

    def reset(self) -> None:
        """Forget the smoothing history (e.g. after the audio source changes)."""
        self._previous = None

    def _prepare(self, samples: np.ndarray) -> np.ndarray:
        """Collapse to mono and left-pad or trim to exactly one window."""
        mono = np.asarray(samples, dtype=np.float64)
        if mono.ndim > 1:
            mono = mono.mean(axis=1)
        if len(mono) >= self.window_size:
            return mono[-self.window_size:]
        return np.pad(mono, (self.window_size - len(mono), 0))

    def analyze(self, samples: np.ndarray | None) -> np.ndarray:
        """
        Compute the smoothed log-magnitude spectrum of the latest window.

        Args:
            samples: Recent audio, shape (n,) or (n, channels). ``None`` or an
                     empty array means no source is attached.

        Returns:
            Array of ``window_size // 2`` dB values, or an empty array when
            there is no data. An empty result means "skip this tick".
        """
        if samples is None or np.size(samples) == 0:
            return np.empty(0)

        segment = self._prepare(samples) * self._window
        magnitude = np.abs(np.fft.rfft(segment))[: self.bin_count] / self.window_size

        if self._previous is not None and self.smoothing > 0.0:
            magnitude = self.smoothing * self._previous + (1.0 - self.smoothing) * magnitude
        self._previous = magnitude

        return 20.0 * np.log10(np.maximum(magnitude, _MAGNITUDE_FLOOR))
