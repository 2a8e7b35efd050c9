"""ChordDetector: one pass from raw samples to a chord label."""

import logging

import numpy as np

from livechord.chord_matcher import ChordMatch, ChordTemplate, ChordTemplateMatcher
from livechord.config import DetectionConfig
from livechord.peak_extractor import PeakExtractor
from livechord.pitch_mapper import pitch_classes
from livechord.spectral_analyzer import SpectralAnalyzer

logger = logging.getLogger(__name__)

MIN_PEAKS = 2


class ChordDetector:
    """
    Runs the analysis chain for a single detection tick:

        samples -> SpectralAnalyzer -> PeakExtractor -> pitch classes
                -> ChordTemplateMatcher -> ChordMatch

    Every stage can come up empty (no samples, silent spectrum, fewer than
    two peaks, no template reaching the minimum, a weighted confidence
    below ``min_confidence``); each of those ends the tick with ``None``
    rather than an exception.
    """

    def __init__(
        self,
        analyzer: SpectralAnalyzer,
        extractor: PeakExtractor,
        matcher: ChordTemplateMatcher,
        min_confidence: float = 0.0,
    ) -> None:
        self.analyzer = analyzer
        self.extractor = extractor
        self.matcher = matcher
        self.min_confidence = min_confidence

    @classmethod
    def from_config(
        cls,
        config: DetectionConfig,
        templates: list[ChordTemplate] | None = None,
    ) -> "ChordDetector":
        return cls(
            analyzer=SpectralAnalyzer.from_config(config),
            extractor=PeakExtractor.from_config(config),
            matcher=ChordTemplateMatcher.from_config(config, templates),
            min_confidence=config.min_confidence,
        )

    @property
    def window_size(self) -> int:
        return self.analyzer.window_size

    def reset(self) -> None:
        self.analyzer.reset()

    def detect(self, samples: np.ndarray | None, sample_rate: float) -> ChordMatch | None:
        spectrum = self.analyzer.analyze(samples)
        if spectrum.size == 0:
            return None

        peaks = self.extractor.extract(spectrum, sample_rate)
        if len(peaks) < MIN_PEAKS:
            return None

        notes = pitch_classes(peaks)
        match = self.matcher.match(notes)
        logger.debug("Peaks %s -> notes %s -> %s", [round(p, 1) for p in peaks], notes, match)
        if match is not None and match.confidence < self.min_confidence:
            return None
        return match
