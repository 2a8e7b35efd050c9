"""Arrangement: a song layout and its chord grid edited as one unit."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from livechord.chord_grid import ChordGrid, GridCoordinate
from livechord.errors import LayoutError
from livechord.position_resolver import MusicalPosition, PositionResolver
from livechord.song_layout import Section, SongLayout

if TYPE_CHECKING:
    from livechord.insertion import DetectionEvent

logger = logging.getLogger(__name__)


class Arrangement:
    """
    Owns the section layout and the chord grid of one song.

    Section indices are positional, so every edit that changes them must
    update the grid in the same step. Each method below holds the grid lock
    for the whole edit; a detection tick resolving a position through
    ``resolve()`` therefore sees either the old layout and old grid or the
    new layout and new grid, never a mix.
    """

    def __init__(self, layout: SongLayout, grid: ChordGrid | None = None) -> None:
        self.grid = grid if grid is not None else ChordGrid()
        self._layout = layout
        self._resolver = PositionResolver()

    @property
    def layout(self) -> SongLayout:
        with self.grid.lock:
            return self._layout

    @property
    def beats_per_bar(self) -> int:
        return self.layout.beats_per_bar

    def resolve(self, seconds: float) -> MusicalPosition | None:
        """Resolve a playback time against the current layout."""
        with self.grid.lock:
            return self._resolver.resolve(seconds, self._layout)

    def insert_detected(self, event: DetectionEvent) -> GridCoordinate | None:
        """
        Auto-insert a detected chord if its position is still current.

        The event's position was resolved before the audio was analysed. If
        a section or bar edit landed in between, ``event.playback_time`` no
        longer resolves to the same position and the event is dropped.

        Returns:
            The coordinate written, or None when the event was stale or the
            bar was already full.
        """
        with self.grid.lock:
            current = self._resolver.resolve(event.playback_time, self._layout)
            if current != event.position:
                logger.debug(
                    "Dropped stale %s detection: %s now resolves to %s",
                    event.chord,
                    event.position,
                    current,
                )
                return None
            return self.grid.insert_auto(event.position, self._layout.beats_per_bar, event.chord)

    def set_layout(self, layout: SongLayout) -> None:
        """Replace tempo or meter. Sections must keep their positions."""
        with self.grid.lock:
            self._layout = layout

    # ------------------------------------------------------------------
    # Section edits
    # ------------------------------------------------------------------

    def _section(self, index: int) -> Section:
        sections = self._layout.sections
        if not 0 <= index < len(sections):
            raise IndexError(f"No section at index {index} (have {len(sections)}).")
        return sections[index]

    def _replace_section(self, index: int, section: Section) -> None:
        sections = list(self._layout.sections)
        sections[index] = section
        self._layout = self._layout.with_sections(sections)

    def add_section(
        self,
        name: str | None = None,
        start_time: str = "0:00",
        end_time: str = "0:10",
        bar_count: int = 4,
    ) -> int:
        """Append a section and return its index."""
        with self.grid.lock:
            index = len(self._layout.sections)
            section = Section(
                name=name if name is not None else f"Section {index + 1}",
                start_time=start_time,
                end_time=end_time,
                bar_count=bar_count,
            )
            self._layout = self._layout.with_sections([*self._layout.sections, section])
            return index

    def delete_section(self, index: int) -> Section:
        """
        Remove a section, purge its chords and shift later sections' chords.

        Raises:
            LayoutError: If it is the only section left.
        """
        with self.grid.lock:
            removed = self._section(index)
            if len(self._layout.sections) <= 1:
                raise LayoutError("An arrangement must keep at least one section.")
            sections = [s for i, s in enumerate(self._layout.sections) if i != index]
            self._layout = self._layout.with_sections(sections)
            self.grid.reindex_after_section_delete(index)
            logger.info("Deleted section %d (%s)", index, removed.name)
            return removed

    def add_bar(self, index: int) -> None:
        """Append one bar to a section."""
        with self.grid.lock:
            section = self._section(index)
            self._replace_section(index, section.with_bars(section.bar_count + 1))

    def remove_bar(self, index: int) -> None:
        """
        Drop the last bar of a section together with its chords.

        Raises:
            LayoutError: If the section has only one bar.
        """
        with self.grid.lock:
            section = self._section(index)
            if section.bar_count <= 1:
                raise LayoutError(f"Section '{section.name}' must have at least one bar.")
            bar_count = section.bar_count - 1
            self._replace_section(index, section.with_bars(bar_count))
            self.grid.truncate_section(index, bar_count)

    def add_row(self, index: int) -> None:
        """Add a grid row, growing the section by one row's worth of bars."""
        with self.grid.lock:
            section = self._section(index)
            bars_per_row = math.ceil(section.bar_count / section.row_count)
            self._replace_section(
                index,
                section.with_bars(section.bar_count + bars_per_row, section.row_count + 1),
            )

    def remove_row(self, index: int) -> None:
        """
        Remove the last grid row and the chords in its bars.

        Raises:
            LayoutError: If the section has a single row.
        """
        with self.grid.lock:
            section = self._section(index)
            if section.row_count <= 1:
                raise LayoutError(f"Section '{section.name}' has a single row.")
            bars_per_row = math.ceil(section.bar_count / section.row_count)
            bar_count = max(1, section.bar_count - bars_per_row)
            self._replace_section(index, section.with_bars(bar_count, section.row_count - 1))
            self.grid.truncate_section(index, bar_count)
