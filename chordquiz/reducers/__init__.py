"""Reducers that compute quiz state from input events."""

from chordquiz.reducers.quiz import reduce_quiz, reduce_events, replay_session
from chordquiz.reducers.stats import reduce_stats
from chordquiz.reducers.session import reduce_session_state

__all__ = [
    "reduce_quiz",
    "reduce_events",
    "replay_session",
    "reduce_stats",
    "reduce_session_state",
]
