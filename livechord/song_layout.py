"""Song layout models: sections, tempo and time signature as the editor stores them."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Final

from livechord.errors import LayoutError

logger = logging.getLogger(__name__)

DEFAULT_BEATS_PER_BAR: Final[int] = 4

_CLOCK_PATTERN = re.compile(r"^\s*(\d+):(\d{1,2}(?:\.\d+)?)\s*$")

# Malformed time signatures already reported, so the warning is logged once.
_reported_signatures: set[str] = set()


def parse_clock(value: str) -> float:
    """
    Convert an ``m:ss`` clock string to seconds.

    Raises:
        LayoutError: If the string is not a valid clock.
    """
    found = _CLOCK_PATTERN.match(value)
    if found is None:
        raise LayoutError(f"Invalid clock '{value}': expected m:ss.")
    minutes, seconds = int(found.group(1)), float(found.group(2))
    if seconds >= 60:
        raise LayoutError(f"Invalid clock '{value}': seconds must be below 60.")
    return minutes * 60 + seconds


def format_clock(seconds: float) -> str:
    """Render seconds as ``m:ss`` (truncating fractions)."""
    total = max(int(seconds), 0)
    return f"{total // 60}:{total % 60:02d}"


def beats_per_bar(time_signature: str) -> int:
    """
    Beats per bar from the numerator of an ``N/M`` time signature.

    A malformed signature is a data error: it is logged once and the
    common-time default of 4 is used so detection keeps running.
    """
    numerator = time_signature.split("/", 1)[0].strip()
    if numerator.isdigit() and int(numerator) > 0:
        return int(numerator)
    if time_signature not in _reported_signatures:
        _reported_signatures.add(time_signature)
        logger.warning(
            "Malformed time signature %r; assuming %d beats per bar",
            time_signature,
            DEFAULT_BEATS_PER_BAR,
        )
    return DEFAULT_BEATS_PER_BAR


@dataclass(frozen=True)
class Section:
    """
    One arrangement section.

    Attributes:
        name:       Display name, e.g. "Verse 1".
        start_time: Section start as ``m:ss``.
        end_time:   Section end as ``m:ss`` (inclusive).
        bar_count:  Number of bars in the section grid.
        row_count:  Number of grid rows the bars are laid out on.
    """

    name: str
    start_time: str
    end_time: str
    bar_count: int
    row_count: int = 1

    def __post_init__(self) -> None:
        if self.bar_count < 0:
            raise LayoutError(f"Section '{self.name}' has a negative bar count.")
        if self.row_count < 1:
            raise LayoutError(f"Section '{self.name}' must have at least one row.")
        # Validate the clocks eagerly so bad data fails at load time.
        parse_clock(self.start_time)
        parse_clock(self.end_time)

    @property
    def start_seconds(self) -> float:
        return parse_clock(self.start_time)

    @property
    def end_seconds(self) -> float:
        return parse_clock(self.end_time)

    def contains(self, seconds: float) -> bool:
        return self.start_seconds <= seconds <= self.end_seconds

    def with_bars(self, bar_count: int, row_count: int | None = None) -> Section:
        return replace(
            self,
            bar_count=bar_count,
            row_count=self.row_count if row_count is None else row_count,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Section:
        try:
            return cls(
                name=str(data.get("name", "")),
                start_time=str(data["start_time"]),
                end_time=str(data["end_time"]),
                bar_count=int(data.get("bars", 0)),
                row_count=int(data.get("rows") or 1),
            )
        except KeyError as exc:
            raise LayoutError(f"Section is missing field {exc}.") from None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "bars": self.bar_count,
            "rows": self.row_count,
        }


@dataclass(frozen=True)
class SongLayout:
    """
    Tempo, meter and ordered sections of a song.

    Section indices are positional: deleting a section shifts every later
    index down by one.
    """

    tempo: float
    time_signature: str = "4/4"
    sections: tuple[Section, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.tempo <= 0:
            raise LayoutError(f"Tempo must be positive, got {self.tempo}.")

    @property
    def beats_per_bar(self) -> int:
        return beats_per_bar(self.time_signature)

    @property
    def seconds_per_bar(self) -> float:
        return self.beats_per_bar / (self.tempo / 60.0)

    @property
    def total_bars(self) -> int:
        return sum(section.bar_count for section in self.sections)

    def with_sections(self, sections: list[Section] | tuple[Section, ...]) -> SongLayout:
        return replace(self, sections=tuple(sections))

    def find_overlaps(self) -> list[tuple[int, int]]:
        """Index pairs of sections whose time ranges intersect. Sharing a boundary is not an overlap."""
        overlaps: list[tuple[int, int]] = []
        for i, first in enumerate(self.sections):
            for j in range(i + 1, len(self.sections)):
                second = self.sections[j]
                if first.start_seconds < second.end_seconds and second.start_seconds < first.end_seconds:
                    overlaps.append((i, j))
        return overlaps

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SongLayout:
        """Load the editor's JSON shape: ``{tempo, time_signature, sections: [...]}``."""
        if "tempo" not in data:
            raise LayoutError("Song layout is missing 'tempo'.")
        return cls(
            tempo=float(data["tempo"]),
            time_signature=str(data.get("time_signature", "4/4")),
            sections=tuple(Section.from_dict(s) for s in data.get("sections", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tempo": self.tempo,
            "time_signature": self.time_signature,
            "sections": [section.to_dict() for section in self.sections],
        }
