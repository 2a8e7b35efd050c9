"""Musical position resolution: playback seconds to (section, bar)."""

import logging
import math
from dataclasses import dataclass

from livechord.song_layout import SongLayout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MusicalPosition:
    """
    A bar inside a section.

    Attributes:
        section_index: Positional index into the layout's sections.
        bar_index:     0-based bar within that section (< section.bar_count).
        row_index:     Grid row the bar is written to.
    """

    section_index: int
    bar_index: int
    row_index: int = 0


class PositionResolver:
    """
    Converts continuous playback time into a MusicalPosition.

    ``seconds_per_bar = beats_per_bar / (tempo / 60)``. Sections are scanned
    in order and the first whose inclusive ``[start, end]`` range contains
    the time wins; the bar index is ``floor((t - start) / seconds_per_bar)``
    clamped to the section's bars.

    Overlapping sections break that rule. Resolution still returns the
    first match, but the overlap is reported once per layout as a data error.
    """

    def __init__(self) -> None:
        self._checked: SongLayout | None = None

    def _check_overlaps(self, layout: SongLayout) -> None:
        if layout == self._checked:
            return
        self._checked = layout
        for first, second in layout.find_overlaps():
            logger.warning(
                "Sections %d (%s) and %d (%s) overlap; the earlier section wins",
                first,
                layout.sections[first].name,
                second,
                layout.sections[second].name,
            )

    def resolve(self, seconds: float, layout: SongLayout) -> MusicalPosition | None:
        """
        Args:
            seconds: Current playback position.
            layout:  Tempo, meter and sections of the song.

        Returns:
            The position, or None when the time lies outside every section
            (or inside a section with no bars).
        """
        self._check_overlaps(layout)
        seconds_per_bar = layout.seconds_per_bar

        for index, section in enumerate(layout.sections):
            if not section.contains(seconds):
                continue
            if section.bar_count == 0:
                return None
            bar = math.floor((seconds - section.start_seconds) / seconds_per_bar)
            return MusicalPosition(
                section_index=index,
                bar_index=min(max(bar, 0), section.bar_count - 1),
            )
        return None


def resolve_position(seconds: float, layout: SongLayout) -> MusicalPosition | None:
    """One-shot resolution without overlap bookkeeping."""
    return PositionResolver().resolve(seconds, layout)
