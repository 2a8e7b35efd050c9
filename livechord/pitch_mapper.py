"""Pitch mapping: frequency in Hz to an equal-tempered pitch class name."""

import math
from typing import Final

# Chromatic pitch class names (index 0 = C)
NOTE_NAMES: Final[list[str]] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

A4_HZ: Final[float] = 440.0
C0_HZ: Final[float] = A4_HZ * 2 ** -4.75

MIN_OCTAVE = 0
MAX_OCTAVE = 9

# Flat spellings folded onto the sharp names above.
_ENHARMONICS: Final[dict[str, str]] = {
    "DB": "C#",
    "EB": "D#",
    "FB": "E",
    "E#": "F",
    "GB": "F#",
    "AB": "G#",
    "BB": "A#",
    "CB": "B",
    "B#": "C",
}


def frequency_to_semitone(frequency: float) -> int | None:
    """Semitones above C0, or None for non-positive frequencies."""
    if not frequency > 0:
        return None
    return round(12 * math.log2(frequency / C0_HZ))


def frequency_to_pitch_class(frequency: float) -> str | None:
    """
    Map a frequency to one of the 12 pitch class names.

    Uses ``h = round(12 * log2(f / C0))`` with ``C0 = 440 * 2**-4.75``.
    Octave information is discarded; inputs whose octave ``h // 12`` falls
    outside [0, 9] are rejected.

    Returns:
        A name from NOTE_NAMES, or None when no pitch can be assigned.
    """
    semitone = frequency_to_semitone(frequency)
    if semitone is None:
        return None
    octave = semitone // 12
    if octave < MIN_OCTAVE or octave > MAX_OCTAVE:
        return None
    return NOTE_NAMES[semitone % 12]


def pitch_class_frequency(name: str, octave: int = 4) -> float:
    """Reference frequency of a pitch class in the given octave (A4 = 440 Hz)."""
    index = NOTE_NAMES.index(normalize_note_name(name))
    return C0_HZ * 2 ** (octave + index / 12)


def normalize_note_name(name: str) -> str:
    """
    Canonical sharp spelling of a note name ("Bb" -> "A#", "c" -> "C").

    Raises:
        ValueError: If the name is not a recognised note.
    """
    key = name.strip().upper()
    if key in NOTE_NAMES:
        return key
    if key in _ENHARMONICS:
        return _ENHARMONICS[key]
    raise ValueError(f"Unknown note name '{name}'.")


def pitch_classes(frequencies: list[float]) -> list[str]:
    """Distinct pitch classes for a list of frequencies, in first-seen order."""
    seen: list[str] = []
    for frequency in frequencies:
        name = frequency_to_pitch_class(frequency)
        if name is not None and name not in seen:
            seen.append(name)
    return seen
