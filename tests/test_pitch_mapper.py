"""Unit tests for frequency -> pitch class mapping."""

import pytest

from livechord.pitch_mapper import (
    NOTE_NAMES,
    frequency_to_pitch_class,
    normalize_note_name,
    pitch_class_frequency,
    pitch_classes,
)


@pytest.mark.parametrize("name", NOTE_NAMES)
def test_octave_four_reference_frequency_maps_back(name: str) -> None:
    assert frequency_to_pitch_class(pitch_class_frequency(name, octave=4)) == name


def test_concert_a() -> None:
    assert frequency_to_pitch_class(440.0) == "A"


def test_middle_c() -> None:
    assert frequency_to_pitch_class(261.63) == "C"


def test_octave_is_discarded() -> None:
    assert frequency_to_pitch_class(110.0) == "A"
    assert frequency_to_pitch_class(1760.0) == "A"


def test_slightly_detuned_note_rounds_to_nearest() -> None:
    assert frequency_to_pitch_class(446.0) == "A"
    assert frequency_to_pitch_class(455.0) == "A#"


@pytest.mark.parametrize("frequency", [0.0, -440.0, float("nan")])
def test_non_positive_frequency_has_no_pitch(frequency: float) -> None:
    assert frequency_to_pitch_class(frequency) is None


def test_below_octave_zero_rejected() -> None:
    assert frequency_to_pitch_class(10.0) is None


def test_above_octave_nine_rejected() -> None:
    assert frequency_to_pitch_class(pitch_class_frequency("C", octave=10)) is None


def test_normalize_flats_to_sharps() -> None:
    assert normalize_note_name("Bb") == "A#"
    assert normalize_note_name("eb") == "D#"
    assert normalize_note_name("C#") == "C#"


def test_normalize_rejects_unknown_name() -> None:
    with pytest.raises(ValueError):
        normalize_note_name("H")


def test_pitch_classes_deduplicates_in_order() -> None:
    assert pitch_classes([440.0, 261.63, 880.0, 0.0]) == ["A", "C"]
