"""Chord quiz data models."""

from chordquiz.models.theory import (
    Chord,
    ChordType,
    CHORD_TYPES,
    get_chord,
    get_chord_type,
    detect_chords,
)
from chordquiz.models.quiz import (
    MatchStatus,
    Parameters,
    Game,
    GameState,
    GameTimer,
    NotStarted,
    Running,
    Ended,
    Session,
)
from chordquiz.models.events import (
    QuizEvent,
    QuizEventType,
    # Payload types
    ParametersChangedPayload,
    NotesHeldPayload,
    NotesReleasedPayload,
)

__all__ = [
    # Theory
    "Chord",
    "ChordType",
    "CHORD_TYPES",
    "get_chord",
    "get_chord_type",
    "detect_chords",
    # Quiz state
    "MatchStatus",
    "Parameters",
    "Game",
    "GameState",
    "GameTimer",
    "NotStarted",
    "Running",
    "Ended",
    "Session",
    # Events
    "QuizEvent",
    "QuizEventType",
    # Payloads
    "ParametersChangedPayload",
    "NotesHeldPayload",
    "NotesReleasedPayload",
]
