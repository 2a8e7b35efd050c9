"""ChordGrid: sparse map from (section, bar, beat, row) to chord label."""

from __future__ import annotations

import logging
import threading
from typing import Iterator, NamedTuple

from livechord.position_resolver import MusicalPosition

logger = logging.getLogger(__name__)


class GridCoordinate(NamedTuple):
    """Address of one beat cell in the chord grid."""

    section_index: int
    bar_index: int
    beat_index: int
    row_index: int = 0

    @classmethod
    def at(cls, position: MusicalPosition, beat_index: int) -> GridCoordinate:
        return cls(position.section_index, position.bar_index, beat_index, position.row_index)

    def to_key(self) -> str:
        """Serialized ``s-b-beat-r`` form used by the editor's export format."""
        return "-".join(str(part) for part in self)

    @classmethod
    def from_key(cls, key: str) -> GridCoordinate:
        parts = [int(part) for part in key.split("-")]
        if len(parts) == 3:
            parts.append(0)
        if len(parts) != 4 or min(parts) < 0:
            raise ValueError(f"Invalid grid key '{key}'.")
        return cls(*parts)


class ChordGrid:
    """
    Conflict-aware chord store.

    Write rules
    -----------
    * ``insert_manual`` always writes, replacing whatever is there
      (last writer wins).
    * ``insert_auto`` fills the first empty beat of a bar and never
      overwrites; a full bar makes it a no-op.
    * Cells written manually stay protected from auto writes until they are
      removed, including after a section delete shifts their coordinates.

    Every method takes the grid's lock, so each call is atomic with respect
    to the others. Callers that must combine a layout change with a grid
    change (deleting a section, dropping bars) should hold ``lock`` across
    both, as Arrangement does.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._cells: dict[GridCoordinate, str] = {}
        self._manual: set[GridCoordinate] = set()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get(self, coordinate: GridCoordinate) -> str | None:
        with self.lock:
            return self._cells.get(coordinate)

    def is_manual(self, coordinate: GridCoordinate) -> bool:
        with self.lock:
            return coordinate in self._manual

    def __contains__(self, coordinate: object) -> bool:
        with self.lock:
            return coordinate in self._cells

    def __len__(self) -> int:
        with self.lock:
            return len(self._cells)

    def __iter__(self) -> Iterator[GridCoordinate]:
        with self.lock:
            return iter(sorted(self._cells))

    def items(self) -> list[tuple[GridCoordinate, str]]:
        """Snapshot of all cells in coordinate order."""
        with self.lock:
            return sorted(self._cells.items())

    def bar_chords(self, position: MusicalPosition, beats_per_bar: int) -> list[str]:
        """Labels present in a bar, in beat order."""
        with self.lock:
            cells = (self._cells.get(GridCoordinate.at(position, beat)) for beat in range(beats_per_bar))
            return [label for label in cells if label is not None]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_auto(self, position: MusicalPosition, beats_per_bar: int, label: str) -> GridCoordinate | None:
        """
        Write ``label`` to the first empty beat of the bar.

        Returns:
            The coordinate written, or None when the bar is already full.
        """
        with self.lock:
            for beat in range(beats_per_bar):
                coordinate = GridCoordinate.at(position, beat)
                if coordinate in self._cells:
                    continue
                self._cells[coordinate] = label
                return coordinate
        logger.debug("Bar %s is full; dropped auto chord %s", position, label)
        return None

    def insert_manual(self, coordinate: GridCoordinate, label: str) -> None:
        """Write ``label`` at ``coordinate``, replacing any existing entry."""
        with self.lock:
            self._cells[coordinate] = label
            self._manual.add(coordinate)

    def remove(self, coordinate: GridCoordinate) -> str | None:
        """Delete one cell. Returns the removed label, if there was one."""
        with self.lock:
            self._manual.discard(coordinate)
            return self._cells.pop(coordinate, None)

    def remove_label(self, position: MusicalPosition, beats_per_bar: int, label: str) -> GridCoordinate | None:
        """Remove the first beat in the bar holding ``label``."""
        with self.lock:
            for beat in range(beats_per_bar):
                coordinate = GridCoordinate.at(position, beat)
                if self._cells.get(coordinate) == label:
                    self.remove(coordinate)
                    return coordinate
        return None

    def clear_bar(self, position: MusicalPosition, beats_per_bar: int) -> int:
        """Remove every beat entry of one bar. Returns how many were removed."""
        with self.lock:
            removed = 0
            for beat in range(beats_per_bar):
                if self.remove(GridCoordinate.at(position, beat)) is not None:
                    removed += 1
            return removed

    def clear(self) -> None:
        with self.lock:
            self._cells.clear()
            self._manual.clear()

    # ------------------------------------------------------------------
    # Structural updates
    # ------------------------------------------------------------------

    def _rebuild(self, mapping) -> None:
        """Apply ``mapping(coordinate) -> coordinate | None`` to every cell."""
        cells: dict[GridCoordinate, str] = {}
        manual: set[GridCoordinate] = set()
        for coordinate, label in self._cells.items():
            moved = mapping(coordinate)
            if moved is None:
                continue
            cells[moved] = label
            if coordinate in self._manual:
                manual.add(moved)
        self._cells, self._manual = cells, manual

    def reindex_after_section_delete(self, deleted_index: int) -> None:
        """
        Drop entries of the deleted section and shift later sections down.

        Entries with ``section_index == deleted_index`` are removed; entries
        with a greater index have it decremented by one.
        """

        def shift(coordinate: GridCoordinate) -> GridCoordinate | None:
            if coordinate.section_index == deleted_index:
                return None
            if coordinate.section_index > deleted_index:
                return coordinate._replace(section_index=coordinate.section_index - 1)
            return coordinate

        with self.lock:
            self._rebuild(shift)

    def truncate_section(self, section_index: int, bar_count: int) -> None:
        """Remove entries in a section whose bar index is ``>= bar_count``."""

        def keep(coordinate: GridCoordinate) -> GridCoordinate | None:
            if coordinate.section_index == section_index and coordinate.bar_index >= bar_count:
                return None
            return coordinate

        with self.lock:
            self._rebuild(keep)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, str]:
        """Export as ``{"s-b-beat-r": label}``, in coordinate order."""
        return {coordinate.to_key(): label for coordinate, label in self.items()}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> ChordGrid:
        """Load an export. Loaded entries count as manual (user-owned) data."""
        grid = cls()
        for key, label in data.items():
            grid.insert_manual(GridCoordinate.from_key(key), label)
        return grid
