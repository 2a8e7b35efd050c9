"""Unit tests for playback time -> musical position resolution."""

import logging

import pytest

from livechord.position_resolver import MusicalPosition, PositionResolver, resolve_position
from livechord.song_layout import Section, SongLayout


def _sample_layout() -> SongLayout:
    return SongLayout(
        tempo=72,
        time_signature="4/4",
        sections=(
            Section("Intro", "0:00", "0:15", 4),
            Section("Verse", "0:20", "0:40", 6),
        ),
    )


def test_bar_boundary_example() -> None:
    # 4 / (72 / 60) = 3.33 s per bar; 10.0 s is in the fourth bar.
    assert resolve_position(10.0, _sample_layout()) == MusicalPosition(0, 3)


def test_first_bar() -> None:
    assert resolve_position(0.0, _sample_layout()) == MusicalPosition(0, 0)
    assert resolve_position(3.0, _sample_layout()) == MusicalPosition(0, 0)


def test_bar_index_clamped_to_section() -> None:
    # 14.9 s would be bar 4 but the section has only bars 0..3.
    assert resolve_position(14.9, _sample_layout()) == MusicalPosition(0, 3)


def test_end_time_is_inclusive() -> None:
    assert resolve_position(15.0, _sample_layout()) == MusicalPosition(0, 3)


def test_second_section_measures_from_its_start() -> None:
    assert resolve_position(27.0, _sample_layout()) == MusicalPosition(1, 2)


def test_gap_between_sections_is_unresolved() -> None:
    assert resolve_position(17.0, _sample_layout()) is None


def test_after_last_section_is_unresolved() -> None:
    assert resolve_position(100.0, _sample_layout()) is None


def test_section_without_bars_is_unresolved() -> None:
    layout = SongLayout(tempo=120, sections=(Section("Empty", "0:00", "0:10", 0),))
    assert resolve_position(5.0, layout) is None


def test_malformed_time_signature_uses_four_beats() -> None:
    layout = SongLayout(tempo=60, time_signature="??", sections=(Section("A", "0:00", "0:30", 8),))
    # 4 s per bar
    assert resolve_position(9.0, layout) == MusicalPosition(0, 2)


def test_overlap_first_section_wins_and_is_logged_once(caplog: pytest.LogCaptureFixture) -> None:
    layout = SongLayout(
        tempo=60,
        sections=(Section("A", "0:00", "0:20", 5), Section("B", "0:10", "0:30", 5)),
    )
    resolver = PositionResolver()
    with caplog.at_level(logging.WARNING, logger="livechord.position_resolver"):
        first = resolver.resolve(12.0, layout)
        resolver.resolve(13.0, layout)
    assert first == MusicalPosition(0, 3)
    assert caplog.text.count("overlap") == 1


def test_contiguous_sections_are_not_reported(caplog: pytest.LogCaptureFixture) -> None:
    layout = SongLayout(
        tempo=120,
        sections=(Section("A", "0:00", "0:10", 4), Section("B", "0:10", "0:20", 4)),
    )
    with caplog.at_level(logging.WARNING, logger="livechord.position_resolver"):
        # 2 s per bar; the shared boundary belongs to the earlier section
        assert PositionResolver().resolve(5.0, layout) == MusicalPosition(0, 2)
        assert PositionResolver().resolve(10.0, layout) == MusicalPosition(0, 3)
    assert "overlap" not in caplog.text
