"""Match classifier - grades one chord interpretation against the target.

Levels, best first:
- CORRECT: the same chord (tonic pitch class and type)
- ALTERNATE: the same pitch classes under another name
- PARTIAL: the right tonic, or at least half the notes in common
- WRONG: anything else, including notes that form no known chord
"""

from collections.abc import Iterable

from chordquiz.models.quiz import GameState, MatchStatus
from chordquiz.models.theory import Chord, chroma_set


CORRECT_SCORE = 100
ALTERNATE_SCORE = 75
PARTIAL_WEIGHT = 50
WRONG_WEIGHT = 25

PARTIAL_OVERLAP = 0.5


def overlap(expected: frozenset[int], played: frozenset[int]) -> float:
    """Jaccard similarity of two pitch-class sets."""
    union = expected | played
    if not union:
        return 0.0
    return len(expected & played) / len(union)


def classify(
    expected: Chord,
    candidate: Chord | None,
    pitch_classes: Iterable[str],
) -> tuple[MatchStatus, int]:
    """Grade a candidate chord against the expected one.

    Args:
        expected: The target chord.
        candidate: One interpretation of the held notes, or None.
        pitch_classes: The held pitch-class names.

    Returns:
        (status, score), score never negative.
    """
    played = candidate.chroma if candidate is not None else chroma_set(pitch_classes)
    similarity = overlap(expected.chroma, played)

    if candidate is not None:
        if candidate == expected:
            return MatchStatus.CORRECT, CORRECT_SCORE
        if candidate.chroma == expected.chroma:
            return MatchStatus.ALTERNATE, ALTERNATE_SCORE
        if candidate.tonic_chroma == expected.tonic_chroma or similarity >= PARTIAL_OVERLAP:
            return MatchStatus.PARTIAL, round(PARTIAL_WEIGHT * similarity)

    return MatchStatus.WRONG, round(WRONG_WEIGHT * similarity)


def classify_attempt(
    expected: Chord,
    candidate: Chord | None,
    pitch_classes: Iterable[str],
    cursor: GameState,
) -> GameState:
    """Classify a candidate into a GameState for the attempt in progress.

    The cursor supplies the position and timing fields, which are carried
    through unchanged.
    """
    status, score = classify(expected, candidate, pitch_classes)
    return cursor.model_copy(
        update={"status": status, "chord": candidate, "score": score}
    )
