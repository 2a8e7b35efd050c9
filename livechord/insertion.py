"""Insertion policies: what happens to a DetectionEvent once it is emitted."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Callable

from livechord.arrangement import Arrangement
from livechord.chord_grid import ChordGrid, GridCoordinate
from livechord.position_resolver import MusicalPosition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionEvent:
    """
    A chord heard at a musical position.

    Attributes:
        chord:         Detected chord label.
        position:      Bar the transport was in when the chord was sampled.
        timestamp:     Seconds since the audio source was bound (monotonic, never
                       decreases between events).
        playback_time: Transport position in seconds.
        confidence:    Fraction of the template's notes that were heard.
    """

    chord: str
    position: MusicalPosition
    timestamp: float
    playback_time: float = 0.0
    confidence: float = 1.0


class InsertionPolicy(ABC):
    """Consumer of detection events."""

    @abstractmethod
    def handle(self, event: DetectionEvent) -> None:
        """React to one detection."""

    def __call__(self, event: DetectionEvent) -> None:
        self.handle(event)


class AutoInsertPolicy(InsertionPolicy):
    """
    Write each detection into the first empty beat of its bar.

    Built with ``for_arrangement`` the write goes through
    ``Arrangement.insert_detected``, which drops events whose position was
    invalidated by a layout edit made while the tick was running.
    """

    def __init__(
        self,
        grid: ChordGrid,
        beats_per_bar: Callable[[], int],
        arrangement: Arrangement | None = None,
        history: int = 64,
    ) -> None:
        self.grid = grid
        self.arrangement = arrangement
        self._beats_per_bar = beats_per_bar
        self.inserted: deque[GridCoordinate] = deque(maxlen=history)

    @classmethod
    def for_arrangement(cls, arrangement: Arrangement, history: int = 64) -> AutoInsertPolicy:
        return cls(arrangement.grid, lambda: arrangement.beats_per_bar, arrangement, history)

    def handle(self, event: DetectionEvent) -> None:
        if self.arrangement is not None:
            coordinate = self.arrangement.insert_detected(event)
        else:
            coordinate = self.grid.insert_auto(event.position, self._beats_per_bar(), event.chord)
        if coordinate is not None:
            self.inserted.append(coordinate)
            logger.info(
                "Added %s to section %d, bar %d, beat %d",
                event.chord,
                coordinate.section_index + 1,
                coordinate.bar_index + 1,
                coordinate.beat_index + 1,
            )


class SuggestionPolicy(InsertionPolicy):
    """Keep recent detections for a UI to offer, without touching the grid."""

    def __init__(self, history: int = 32) -> None:
        self.suggestions: deque[DetectionEvent] = deque(maxlen=history)

    @property
    def latest(self) -> DetectionEvent | None:
        return self.suggestions[-1] if self.suggestions else None

    def handle(self, event: DetectionEvent) -> None:
        self.suggestions.append(event)


class CompositePolicy(InsertionPolicy):
    """Fan one event out to several policies, in order."""

    def __init__(self, *policies: InsertionPolicy) -> None:
        self.policies = list(policies)

    def handle(self, event: DetectionEvent) -> None:
        for policy in self.policies:
            policy.handle(event)
