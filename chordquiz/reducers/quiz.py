"""Quiz reducer - the session state machine.

reduce_quiz() is a pure transition (session, action, now) -> session'.
It never mutates its input: every transition builds a new snapshot, and
an action that cannot apply returns the input session itself.

Actions:
- ParametersChangedPayload: start over with a freshly generated Game
- NotesHeldPayload: grade the held notes, keep the best interpretation
- NotesReleasedPayload: record the attempt and move the cursor on

The clock reading (now) is captured by the caller once per transition.
"""

import logging
import random
from collections.abc import Callable, Iterator, Sequence
from functools import partial

from chordquiz.games.classifier import classify_attempt
from chordquiz.games.generator import generate_game
from chordquiz.models.events import (
    QuizEvent,
    QuizEventType,
    ParametersChangedPayload,
    NotesHeldPayload,
    NotesReleasedPayload,
)
from chordquiz.models.quiz import (
    Ended,
    Game,
    GameState,
    MatchStatus,
    Parameters,
    Running,
    Session,
)
from chordquiz.models.theory import Chord


logger = logging.getLogger(__name__)

QuizAction = ParametersChangedPayload | NotesHeldPayload | NotesReleasedPayload
Generator = Callable[[Parameters], Game | None]
Classifier = Callable[[Chord, Chord | None, Sequence[str], GameState], GameState]


def is_better(best: GameState, candidate: GameState) -> bool:
    """Best-of rule for competing interpretations of the same notes.

    The candidate wins if the running best has no chord yet, if its status
    is higher, or if the status is equal and its score is at least as high
    (so the later candidate wins exact ties).
    """
    if best.chord is None:
        return True
    if candidate.status > best.status:
        return True
    return candidate.status == best.status and candidate.score >= best.score


def time_per_chord(elapsed_seconds: float, index: int) -> float | None:
    """Average seconds per chord, None on the first chord of a Game."""
    if index <= 0:
        return None
    return elapsed_seconds / index


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------


def reduce_parameters_changed(
    session: Session,
    parameters: Parameters,
    generate: Generator = generate_game,
) -> Session:
    """Start a new session from new parameters.

    Held notes are abandoned without being scored. If no Game can be
    generated the session is returned unchanged.
    """
    game = generate(parameters)
    if game is None:
        logger.warning("No game can be generated for %s; keeping current session", parameters)
        return session

    return Session(parameters=parameters, games=(game,), game_state=GameState())


def reduce_notes_held(
    session: Session,
    pitch_classes: Sequence[str],
    chords: Sequence[Chord | None],
    now: float,
    classify: Classifier = classify_attempt,
) -> Session:
    """Grade every interpretation of the held notes and keep the best."""
    expected = session.expected_chord
    if expected is None or not chords:
        return session

    cursor = session.game_state
    if not isinstance(cursor.timer, Running):
        cursor = cursor.model_copy(update={"timer": Running(since=now)})

    best = cursor
    for chord in chords:
        candidate = classify(expected, chord, pitch_classes, cursor)
        if is_better(best, candidate):
            best = candidate

    return session.model_copy(update={"game_state": best})


def reduce_notes_released(
    session: Session,
    now: float,
    generate: Generator = generate_game,
) -> Session:
    """Finalize the attempt in progress and advance the cursor.

    A release with nothing observed only resets the cursor.
    """
    state = session.game_state
    game = session.current_game

    if state.status <= MatchStatus.NONE or game is None:
        cleared = state.model_copy(
            update={"status": MatchStatus.NONE, "chord": None, "score": 0}
        )
        return session.model_copy(update={"game_state": cleared})

    timer = state.timer if isinstance(state.timer, Running) else Running(since=now)
    elapsed = now - timer.since

    game = game.model_copy(
        update={
            "succeeded": game.succeeded + (1 if state.status.is_success else 0),
            "score": game.score + state.score,
            "played": game.played + (state.chord,),
            "time_per_chord_seconds": time_per_chord(elapsed, state.index),
        }
    )
    games = (
        session.games[: state.game_index]
        + (game,)
        + session.games[state.game_index + 1 :]
    )

    # Fewer than two chords left: line up the next Game
    if state.index + 2 >= game.length:
        next_game = generate(session.parameters)
        if next_game is not None:
            games = games + (next_game,)
            timer = Ended()
        else:
            logger.warning("No follow-on game for %s", session.parameters)

    if state.index + 1 == game.length:
        game_index, index = state.game_index + 1, 0
    else:
        game_index, index = state.game_index, state.index + 1

    return session.model_copy(
        update={
            "games": games,
            "game_state": GameState(
                game_index=game_index,
                index=index,
                timer=timer,
                elapsed_seconds=elapsed,
            ),
        }
    )


def reduce_quiz(
    session: Session,
    action: QuizAction,
    now: float,
    generate: Generator = generate_game,
    classify: Classifier = classify_attempt,
) -> Session:
    """Apply one action to a session.

    Args:
        session: The current snapshot.
        action: The input to apply.
        now: Wall-clock seconds at the moment of the transition.
        generate: Game generator (defaults to generate_game).
        classify: Attempt classifier (defaults to classify_attempt).

    Returns:
        The next snapshot.
    """
    if isinstance(action, ParametersChangedPayload):
        return reduce_parameters_changed(session, action.parameters, generate)

    if isinstance(action, NotesHeldPayload):
        return reduce_notes_held(
            session, action.pitch_classes, action.chords, now, classify
        )

    if isinstance(action, NotesReleasedPayload):
        return reduce_notes_released(session, now, generate)

    raise TypeError(f"Unknown quiz action: {type(action).__name__}")


# -----------------------------------------------------------------------------
# Replay
# -----------------------------------------------------------------------------


def session_generator(session_id: str) -> Generator:
    """A generator seeded from the session id.

    Live play and replay of the same event log draw the same Games.
    """
    return partial(generate_game, rng=random.Random(session_id))


def replay_events(
    session_id: str,
    events: list[QuizEvent],
    initial: Session | None = None,
    generate: Generator | None = None,
) -> Iterator[tuple[QuizEvent, Session, Session]]:
    """Walk an event log through the reducer.

    Each event's timestamp is used as its transition time.

    Yields:
        (event, session before it, session after it) for each event, in order.
    """
    generate = generate or session_generator(session_id)
    session = initial or Session()
    for event in events:
        before = session
        session = reduce_quiz(
            before,
            event.get_payload_model(),
            event.ts.timestamp(),
            generate=generate,
        )
        yield event, before, session


def reduce_events(
    session_id: str,
    events: list[QuizEvent],
    initial: Session | None = None,
    generate: Generator | None = None,
) -> Session:
    """Fold an event log through the reducer.

    Args:
        session_id: The session ID (seeds the game generator).
        events: All events for the session, ordered by seq.
        initial: Starting snapshot (optional).
        generate: Game generator (defaults to one seeded from session_id).

    Returns:
        The resulting Session.
    """
    session, _ = replay_session(session_id, events, initial, generate)
    return session


def replay_session(
    session_id: str,
    events: list[QuizEvent],
    initial: Session | None = None,
    generate: Generator | None = None,
) -> tuple[Session, bool]:
    """Fold an event log, also reporting whether its last parameter change took.

    A ParametersChanged that could not produce a Game leaves the session
    as it was; the flag stays False until a later one succeeds.

    Returns:
        (session, parameters_applied)
    """
    session = initial or Session()
    parameters_applied = True
    for event, before, session in replay_events(session_id, events, session, generate):
        if event.type == QuizEventType.PARAMETERS_CHANGED:
            parameters_applied = session is not before
    return session, parameters_applied
