"""ChordTemplateMatcher: scores observed pitch classes against a chord table."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from livechord.config import DetectionConfig
from livechord.pitch_mapper import normalize_note_name


@dataclass(frozen=True)
class ChordTemplate:
    """
    A named set of pitch classes.

    Attributes:
        label:  Chord symbol reported on a match, e.g. "Am".
        notes:  Pitch class names in canonical sharp spelling.
        weight: Scales the confidence of a match, in (0, 1]. Chords outside
                the home key carry less than 1 so a partial hit on them
                reads as less certain.
    """

    label: str
    notes: frozenset[str]
    weight: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 < self.weight <= 1.0:
            raise ValueError(f"Template '{self.label}' weight must be in (0, 1], got {self.weight}.")

    @classmethod
    def of(cls, label: str, notes: Iterable[str], weight: float = 1.0) -> "ChordTemplate":
        """Build a template, folding flat spellings onto sharps ("Bb" -> "A#")."""
        return cls(label=label, notes=frozenset(normalize_note_name(n) for n in notes), weight=weight)


@dataclass(frozen=True)
class ChordMatch:
    """
    Result of a successful match.

    Attributes:
        label:      Chord symbol of the winning template.
        matches:    Number of template notes present in the observation.
        confidence: ``matches / len(template.notes) * template.weight``.
    """

    label: str
    matches: int
    confidence: float


# Diatonic triads around C major plus the common borrowed majors, in the
# order the editor's detector lists them. Order matters for tie-breaking.
DEFAULT_TEMPLATE_TABLE: dict[str, tuple[str, ...]] = {
    "C": ("C", "E", "G"),
    "Dm": ("D", "F", "A"),
    "Em": ("E", "G", "B"),
    "F": ("F", "A", "C"),
    "G": ("G", "B", "D"),
    "Am": ("A", "C", "E"),
    "Bb": ("Bb", "D", "F"),
    "D": ("D", "F#", "A"),
    "A": ("A", "C#", "E"),
    "E": ("E", "G#", "B"),
}

# Borrowed chords are less likely in the home key; unlisted labels weigh 1.0.
DEFAULT_TEMPLATE_WEIGHTS: dict[str, float] = {"Bb": 0.9, "D": 0.9, "A": 0.9, "E": 0.9}


def build_templates(
    table: Mapping[str, Sequence[str]],
    weights: Mapping[str, float] | None = None,
) -> list[ChordTemplate]:
    """Turn a ``{label: notes}`` table into templates, keeping table order."""
    weights = weights or {}
    return [ChordTemplate.of(label, notes, weights.get(label, 1.0)) for label, notes in table.items()]


# ── Tie-break policies ─────────────────────────────────────────────────────

class TieBreakPolicy(ABC):
    """Chooses one template among those sharing the best match count."""

    @abstractmethod
    def choose(self, tied: list[ChordTemplate], previous: str | None) -> ChordTemplate:
        """
        Args:
            tied:     Candidates in table order, never empty.
            previous: Label of the last successful match, if any.
        """


class FirstEncountered(TieBreakPolicy):
    """First template in table order wins."""

    def choose(self, tied: list[ChordTemplate], previous: str | None) -> ChordTemplate:
        return tied[0]


class FewestNotes(TieBreakPolicy):
    """The smallest (most specific) template wins; table order breaks remaining ties."""

    def choose(self, tied: list[ChordTemplate], previous: str | None) -> ChordTemplate:
        return min(tied, key=lambda template: len(template.notes))


class MostRecent(TieBreakPolicy):
    """Keeps the previously detected chord when it is among the tied candidates."""

    def choose(self, tied: list[ChordTemplate], previous: str | None) -> ChordTemplate:
        for template in tied:
            if template.label == previous:
                return template
        return tied[0]


_TIE_BREAKS: dict[str, type[TieBreakPolicy]] = {
    "first": FirstEncountered,
    "fewest-notes": FewestNotes,
    "most-recent": MostRecent,
}


def tie_break_for(name: str) -> TieBreakPolicy:
    """Instantiate a tie-break policy by its config name."""
    try:
        return _TIE_BREAKS[name]()
    except KeyError:
        supported = ", ".join(sorted(_TIE_BREAKS))
        raise ValueError(f"Unknown tie break '{name}'. Use one of: {supported}.") from None


# ── Matcher ─────────────────────────────────────────────────────────────────

class ChordTemplateMatcher:
    """
    Picks the template sharing the most pitch classes with an observation.

    For each template, ``matches = |template ∩ observed|``. The best count
    wins if it reaches ``min_matches``; equal counts are resolved by the
    tie-break policy. Anything below the minimum is "no match", and the
    matcher forgets its previous label so a stale chord is not carried over.

    The template table is a plain ordered list and can be swapped at runtime
    with ``set_templates()``; it is not transposed or extended automatically.
    """

    def __init__(
        self,
        templates: list[ChordTemplate] | None = None,
        min_matches: int = 2,
        tie_break: TieBreakPolicy | None = None,
    ) -> None:
        if templates is None:
            templates = build_templates(DEFAULT_TEMPLATE_TABLE, DEFAULT_TEMPLATE_WEIGHTS)
        self.templates = templates
        self.min_matches = min_matches
        self.tie_break = tie_break if tie_break is not None else FirstEncountered()
        self._previous: str | None = None

    @classmethod
    def from_config(
        cls,
        config: DetectionConfig,
        templates: list[ChordTemplate] | None = None,
    ) -> "ChordTemplateMatcher":
        return cls(
            templates=templates,
            min_matches=config.min_template_matches,
            tie_break=tie_break_for(config.tie_break),
        )

    def set_templates(self, templates: list[ChordTemplate]) -> None:
        self.templates = list(templates)
        self._previous = None

    def match(self, observed: Iterable[str]) -> ChordMatch | None:
        """
        Args:
            observed: Pitch class names; duplicates and flat spellings are fine.

        Returns:
            The best ChordMatch, or None when no template reaches ``min_matches``.
        """
        notes = {normalize_note_name(name) for name in observed}

        best_count = 0
        tied: list[ChordTemplate] = []
        for template in self.templates:
            count = len(template.notes & notes)
            if count > best_count:
                best_count, tied = count, [template]
            elif count == best_count and count > 0:
                tied.append(template)

        if best_count < self.min_matches or not tied:
            self._previous = None
            return None

        winner = self.tie_break.choose(tied, self._previous)
        self._previous = winner.label
        return ChordMatch(
            label=winner.label,
            matches=best_count,
            confidence=best_count / len(winner.notes) * winner.weight,
        )
