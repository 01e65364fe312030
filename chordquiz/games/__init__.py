"""Game generation and attempt classification."""

from chordquiz.games.generator import generate_game, chord_pool
from chordquiz.games.classifier import classify, classify_attempt

__all__ = [
    "generate_game",
    "chord_pool",
    "classify",
    "classify_attempt",
]
