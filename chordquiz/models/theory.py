"""Music theory helpers for the chord quiz, built on music21.

Covers just what the quiz needs:
- Note names and pitch classes (chroma 0-11)
- Interval strings ("3M", "5d", "9m") to semitones
- The chord-type catalog and concrete chords
- Detection of chords from a set of held pitch classes

Note names use "b" for flats ("Eb"); music21 writes them with "-" ("E-").
"""

import re
from functools import lru_cache
from typing import Iterable, Literal

from music21 import chord as m21chord
from music21 import exceptions21
from music21 import interval as m21interval
from music21 import pitch as m21pitch
from music21 import scale as m21scale
from pydantic import BaseModel, ConfigDict, computed_field, field_validator


Accidentals = Literal["flat", "sharp"]

SHARP_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
FLAT_NAMES = ("C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B")

# Catalog intervals put the degree first ("3M"); music21 the quality ("M3")
_INTERVAL_RE = re.compile(r"^(\d+)([PMmAd])$")
_PERFECT_DEGREES = {1, 4, 5}


# -----------------------------------------------------------------------------
# Notes
# -----------------------------------------------------------------------------


def _to_pitch(name: str) -> m21pitch.Pitch:
    """Parse a note name ("C", "Eb", "F#4", "bb") into a music21 Pitch.

    Raises:
        ValueError: If the name is not a note.
    """
    text = name.strip()
    if not text or not text[0].isalpha():
        raise ValueError(f"Invalid note name: {name!r}")
    try:
        p = m21pitch.Pitch(text[0].upper() + text[1:].replace("b", "-"))
    except exceptions21.Music21Exception as e:
        raise ValueError(f"Invalid note name: {name!r}") from e
    if p.alter != int(p.alter):
        # Quarter tones have no pitch class
        raise ValueError(f"Invalid note name: {name!r}")
    return p


def _spell(p: m21pitch.Pitch) -> str:
    return p.name.replace("-", "b")


@lru_cache(maxsize=None)
def note_chroma(name: str) -> int:
    """Convert a note name ("C", "Eb", "F#4", "bb") to its pitch class 0-11.

    Raises:
        ValueError: If the name is not a note.
    """
    return _to_pitch(name).pitchClass


@lru_cache(maxsize=None)
def pitch_class(name: str) -> str:
    """Normalize a note name to its octave-less pitch-class spelling ("eb4" -> "Eb")."""
    return _spell(_to_pitch(name))


def pitch_class_name(chroma: int, accidentals: Accidentals = "flat") -> str:
    """Spell a pitch class using flats or sharps."""
    names = FLAT_NAMES if accidentals == "flat" else SHARP_NAMES
    return names[chroma % 12]


def chroma_set(pitch_classes: Iterable[str]) -> frozenset[int]:
    """Pitch-class names to a set of chromas."""
    return frozenset(note_chroma(pc) for pc in pitch_classes)


def major_scale(key: str, accidentals: Accidentals = "flat") -> list[str]:
    """The seven pitch classes of the major scale on `key`, spelled per `accidentals`."""
    degrees = m21scale.MajorScale(_to_pitch(key)).getPitches()[:7]
    return [pitch_class_name(p.pitchClass, accidentals) for p in degrees]


def _music21_interval(interval: str) -> str:
    """Validate a catalog interval ("3M") and return music21's name for it ("M3").

    Raises:
        ValueError: If the interval is malformed or the quality does not fit the degree.
    """
    match = _INTERVAL_RE.match(interval)
    if not match or int(match.group(1)) < 1:
        raise ValueError(f"Invalid interval: {interval!r}")
    number, quality = int(match.group(1)), match.group(2)

    degree = (number - 1) % 7 + 1
    perfect = degree in _PERFECT_DEGREES
    if (perfect and quality in "Mm") or (not perfect and quality == "P"):
        raise ValueError(f"Invalid quality for degree {degree}: {interval!r}")
    return f"{quality}{number}"


@lru_cache(maxsize=None)
def interval_semitones(interval: str) -> int:
    """Semitones spanned by an interval string such as "3M", "5A" or "11P".

    Raises:
        ValueError: If the interval is malformed or the quality does not fit the degree.
    """
    name = _music21_interval(interval)
    try:
        return int(m21interval.Interval(name).semitones)
    except exceptions21.Music21Exception as e:
        raise ValueError(f"Invalid interval: {interval!r}") from e


# -----------------------------------------------------------------------------
# Chord types
# -----------------------------------------------------------------------------


class ChordType(BaseModel):
    """An entry of the chord-type catalog."""

    model_config = ConfigDict(frozen=True)

    name: str
    intervals: tuple[str, ...]
    aliases: tuple[str, ...]

    @property
    def symbol(self) -> str:
        """Canonical symbol (first alias)."""
        return self.aliases[0]

    @property
    def semitones(self) -> tuple[int, ...]:
        return tuple(interval_semitones(i) for i in self.intervals)

    @property
    def chroma(self) -> frozenset[int]:
        """Pitch classes relative to the root."""
        return frozenset(s % 12 for s in self.semitones)


# Format: (intervals, full name, aliases). First alias is the canonical symbol.
_CHORD_DATA: tuple[tuple[str, str, str], ...] = (
    # Major
    ("1P 3M 5P", "major", "M ^ maj"),
    ("1P 3M 5P 7M", "major seventh", "maj7 Δ ma7 M7 Maj7 ^7"),
    ("1P 3M 5P 7M 9M", "major ninth", "maj9 Δ9 ^9"),
    ("1P 3M 5P 7M 9M 13M", "major thirteenth", "maj13 Maj13 ^13"),
    ("1P 3M 5P 6M", "sixth", "6 add6 add13 M6"),
    ("1P 3M 5P 6M 9M", "sixth added ninth", "6add9 6/9 69 M69"),
    ("1P 3M 6m 7M", "major seventh flat sixth", "M7b6 ^7b6"),
    ("1P 3M 5P 7M 11A", "major seventh sharp eleventh", "maj#4 Δ#4 Δ#11 M7#11 ^7#11 maj7#11"),
    # Minor
    ("1P 3m 5P", "minor", "m min -"),
    ("1P 3m 5P 7m", "minor seventh", "m7 min7 mi7 -7"),
    ("1P 3m 5P 7M", "minor/major seventh", "mMaj7 m/ma7 m/maj7 mM7 m/M7 -Δ7 mΔ -^7"),
    ("1P 3m 5P 6M", "minor sixth", "m6 -6"),
    ("1P 3m 5P 7m 9M", "minor ninth", "m9 -9"),
    ("1P 3m 5P 7M 9M", "minor/major ninth", "mM9 mMaj9 -^9"),
    ("1P 3m 5P 7m 9M 11P", "minor eleventh", "m11 -11"),
    ("1P 3m 5P 7m 9M 13M", "minor thirteenth", "m13 -13"),
    # Diminished
    ("1P 3m 5d", "diminished", "dim ° o"),
    ("1P 3m 5d 7d", "diminished seventh", "dim7 °7 o7"),
    ("1P 3m 5d 7m", "half-diminished", "m7b5 ø -7b5 h7 h"),
    # Dominant
    ("1P 3M 5P 7m", "dominant seventh", "7 dom"),
    ("1P 3M 5P 7m 9M", "dominant ninth", "9"),
    ("1P 3M 5P 7m 9M 13M", "dominant thirteenth", "13"),
    ("1P 3M 5P 7m 11A", "lydian dominant seventh", "7#11 7#4"),
    ("1P 3M 5P 7m 9m", "dominant flat ninth", "7b9"),
    ("1P 3M 5P 7m 9A", "dominant sharp ninth", "7#9"),
    ("1P 3M 7m 9m", "altered", "alt7"),
    # Suspended
    ("1P 4P 5P", "suspended fourth", "sus4 sus"),
    ("1P 2M 5P", "suspended second", "sus2"),
    ("1P 4P 5P 7m", "suspended fourth seventh", "7sus4 7sus"),
    ("1P 5P 7m 9M 11P", "eleventh", "11"),
    ("1P 4P 5P 7m 9m", "suspended fourth flat ninth", "b9sus phryg 7b9sus 7b9sus4"),
    # Other
    ("1P 5P", "fifth", "5"),
    ("1P 3M 5A", "augmented", "aug + +5 ^#5"),
    ("1P 3m 5A", "minor augmented", "m#5 -#5 m+"),
    ("1P 3M 5A 7M", "augmented seventh", "maj7#5 maj7+5 +maj7 ^7#5"),
    ("1P 3M 5P 7M 9M 11A", "major sharp eleventh (lydian)", "maj9#11 Δ9#11 ^9#11"),
)

CHORD_TYPES: tuple[ChordType, ...] = tuple(
    ChordType(name=name, intervals=tuple(intervals.split()), aliases=tuple(aliases.split()))
    for intervals, name, aliases in _CHORD_DATA
)

_TYPES_BY_ALIAS: dict[str, ChordType] = {}
for _chord_type in CHORD_TYPES:
    for _alias in _chord_type.aliases:
        _TYPES_BY_ALIAS.setdefault(_alias, _chord_type)
    _TYPES_BY_ALIAS.setdefault(_chord_type.name, _chord_type)


def get_chord_type(alias: str) -> ChordType | None:
    """Look up a chord type by any alias or its full name."""
    return _TYPES_BY_ALIAS.get(alias)


# -----------------------------------------------------------------------------
# Chords
# -----------------------------------------------------------------------------


@lru_cache(maxsize=None)
def chord_notes(tonic: str, symbol: str) -> tuple[str, ...]:
    """Spell a chord by transposing its tonic through each catalog interval.

    chord_notes("Eb", "7") -> ("Eb", "G", "Bb", "Db")
    """
    root = _to_pitch(tonic)
    chord_type = _TYPES_BY_ALIAS[symbol]
    return tuple(
        _spell(root.transpose(_music21_interval(i))) for i in chord_type.intervals
    )


class Chord(BaseModel):
    """A concrete chord: a tonic plus a catalog chord type.

    Two chords are equal when their tonics are the same pitch class and
    their types are the same, so "C#maj7" == "Dbmaj7".
    """

    model_config = ConfigDict(frozen=True)

    tonic: str
    type: str  # canonical symbol of a catalog ChordType

    @field_validator("tonic")
    @classmethod
    def validate_tonic(cls, v: str) -> str:
        return pitch_class(v)

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        chord_type = get_chord_type(v)
        if chord_type is None:
            raise ValueError(f"Unknown chord type: {v!r}")
        return chord_type.symbol

    @property
    def chord_type(self) -> ChordType:
        return _TYPES_BY_ALIAS[self.type]

    @computed_field
    @property
    def symbol(self) -> str:
        return f"{self.tonic}{self.type}"

    @computed_field
    @property
    def name(self) -> str:
        return f"{self.tonic} {self.chord_type.name}"

    @property
    def intervals(self) -> tuple[str, ...]:
        return self.chord_type.intervals

    @property
    def tonic_chroma(self) -> int:
        return note_chroma(self.tonic)

    @computed_field
    @property
    def notes(self) -> tuple[str, ...]:
        return chord_notes(self.tonic, self.type)

    @property
    def chroma(self) -> frozenset[int]:
        """Absolute pitch classes of the chord."""
        root = self.tonic_chroma
        return frozenset((root + c) % 12 for c in self.chord_type.chroma)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Chord):
            return NotImplemented
        return self.tonic_chroma == other.tonic_chroma and self.type == other.type

    def __hash__(self) -> int:
        return hash((self.tonic_chroma, self.type))

    def __str__(self) -> str:
        return self.symbol


def get_chord(alias: str, tonic: str) -> Chord:
    """Build a chord from a chord-type alias and a tonic name.

    Raises:
        ValueError: If the alias or tonic is unknown.
    """
    chord_type = get_chord_type(alias)
    if chord_type is None:
        raise ValueError(f"Unknown chord type: {alias!r}")
    return Chord(tonic=tonic, type=chord_type.symbol)


def detect_chords(
    pitch_classes: Iterable[str],
    enabled: Iterable[str] | None = None,
) -> list[Chord]:
    """Find every catalog chord whose pitch classes are exactly the held ones.

    The first pitch class is treated as the bass: chords rooted on it come
    first, then the other interpretations in held order. Tonics keep the
    spelling they were held with.

    Args:
        pitch_classes: Held pitch-class names, bass first.
        enabled: Restrict to these chord-type symbols (optional).

    Returns:
        Candidate chords, possibly empty.
    """
    names = list(dict.fromkeys(pitch_class(pc) for pc in pitch_classes))
    if not names:
        return []

    held = m21chord.Chord([_to_pitch(n) for n in names])
    held_chroma = frozenset(held.pitchClasses)
    allowed = None
    if enabled is not None:
        allowed = {t.symbol for t in (get_chord_type(a) for a in enabled) if t}

    candidates: list[Chord] = []
    seen: set[int] = set()
    for tonic in names:
        root = note_chroma(tonic)
        if root in seen:
            continue
        seen.add(root)
        relative = frozenset((c - root) % 12 for c in held_chroma)
        for chord_type in CHORD_TYPES:
            if allowed is not None and chord_type.symbol not in allowed:
                continue
            if chord_type.chroma == relative:
                candidates.append(Chord(tonic=tonic, type=chord_type.symbol))
    return candidates
