"""Game generator - builds a fresh practice Game from Parameters."""

import logging
import random

from chordquiz.models.quiz import Game, Parameters
from chordquiz.models.theory import (
    Chord,
    get_chord_type,
    major_scale,
    pitch_class_name,
)


logger = logging.getLogger(__name__)


def chord_pool(parameters: Parameters) -> list[Chord]:
    """Every chord the parameters allow, ordered by tonic.

    Args:
        parameters: The session settings.

    Returns:
        The candidate target chords, possibly empty.
    """
    if parameters.diatonic:
        tonics = major_scale(parameters.key, parameters.accidentals)
    else:
        tonics = [pitch_class_name(c, parameters.accidentals) for c in range(12)]

    symbols: list[str] = []
    for alias in parameters.chord_types:
        chord_type = get_chord_type(alias)
        if chord_type is not None and chord_type.symbol not in symbols:
            symbols.append(chord_type.symbol)

    return [Chord(tonic=tonic, type=symbol) for tonic in tonics for symbol in symbols]


def generate_game(
    parameters: Parameters,
    rng: random.Random | None = None,
) -> Game | None:
    """Generate a new Game, or None if the parameters allow no chord.

    Chords are drawn at random from the pool. The same chord never comes
    twice in a row unless the pool holds a single chord.

    Args:
        parameters: The session settings.
        rng: Random source (optional, a fresh unseeded one by default).

    Returns:
        A Game with empty results, or None.
    """
    pool = chord_pool(parameters)
    if not pool:
        logger.info("No chords available for parameters: %s", parameters)
        return None

    rng = rng or random.Random()
    chords: list[Chord] = []
    for _ in range(parameters.game_length):
        choices = pool
        if chords and len(pool) > 1:
            choices = [c for c in pool if c != chords[-1]]
        chords.append(rng.choice(choices))

    return Game(chords=tuple(chords))
