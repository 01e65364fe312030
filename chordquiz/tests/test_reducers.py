"""Tests for the quiz reducer."""

from datetime import datetime, timezone

import pytest

from chordquiz.models.events import (
    NotesHeldPayload,
    NotesReleasedPayload,
    ParametersChangedPayload,
    QuizEvent,
    QuizEventType,
)
from chordquiz.models.quiz import (
    Ended,
    Game,
    GameState,
    MatchStatus,
    NotStarted,
    Parameters,
    Running,
    Session,
)
from chordquiz.models.theory import Chord, detect_chords, get_chord
from chordquiz.reducers.quiz import (
    is_better,
    reduce_events,
    reduce_quiz,
    replay_session,
    time_per_chord,
)


C = get_chord("M", "C")
G = get_chord("M", "G")
F = get_chord("M", "F")
AM7 = get_chord("m7", "A")


class FixedGenerator:
    """Generator stub handing out the same chords every time."""

    def __init__(self, *chords: Chord, available: bool = True):
        self.chords = chords
        self.available = available
        self.calls = 0

    def __call__(self, parameters: Parameters) -> Game | None:
        self.calls += 1
        if not self.available:
            return None
        return Game(chords=self.chords)


def params_changed(parameters: Parameters | None = None) -> ParametersChangedPayload:
    return ParametersChangedPayload(parameters=parameters or Parameters())


def held(*pitch_classes: str, chords: list[Chord | None] | None = None) -> NotesHeldPayload:
    """Held notes, chords detected unless given."""
    if chords is None:
        chords = detect_chords(pitch_classes) or [None]
    return NotesHeldPayload(pitch_classes=list(pitch_classes), chords=chords)


RELEASED = NotesReleasedPayload()


def start(generate: FixedGenerator, now: float = 100.0) -> Session:
    return reduce_quiz(Session(), params_changed(), now, generate=generate)


def play(session: Session, generate: FixedGenerator, *pitch_classes: str, at: float) -> Session:
    """Hold then release, both at the given time."""
    session = reduce_quiz(session, held(*pitch_classes), at, generate=generate)
    return reduce_quiz(session, RELEASED, at, generate=generate)


class TestParametersChanged:
    """Tests for ParametersChanged."""

    def test_starts_fresh_session(self):
        generate = FixedGenerator(C, G)
        parameters = Parameters(key="G")
        session = reduce_quiz(Session(), params_changed(parameters), 1.0, generate=generate)

        assert session.parameters == parameters
        assert len(session.games) == 1
        assert session.games[0].chords == (C, G)
        assert session.game_state == GameState()
        assert session.game_state.timer == NotStarted()
        assert session.game_state.elapsed_seconds is None

    def test_discards_previous_games_and_held_notes(self):
        generate = FixedGenerator(C, G, F)
        session = start(generate)
        session = play(session, generate, "C", "E", "G", at=101.0)
        session = reduce_quiz(session, held("G", "B", "D"), 102.0, generate=generate)

        session = reduce_quiz(session, params_changed(Parameters(key="D")), 103.0, generate=generate)

        assert len(session.games) == 1
        assert session.games[0].played == ()
        assert session.game_state == GameState()

    def test_ungenerable_parameters_are_a_no_op(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        session = reduce_quiz(session, held("C", "E", "G"), 101.0, generate=generate)
        before = session.model_dump_json()

        generate.available = False
        result = reduce_quiz(session, params_changed(Parameters(chord_types=())), 102.0, generate=generate)

        assert result is session
        assert result.model_dump_json() == before

    def test_ungenerable_parameters_logged(self, caplog):
        generate = FixedGenerator(C, available=False)
        with caplog.at_level("WARNING"):
            reduce_quiz(Session(), params_changed(), 1.0, generate=generate)
        assert "No game can be generated" in caplog.text


class TestNotesHeld:
    """Tests for NotesHeld."""

    def test_correct_chord(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        session = reduce_quiz(session, held("C", "E", "G"), 101.0, generate=generate)

        assert session.game_state.status == MatchStatus.CORRECT
        assert session.game_state.chord == C
        assert session.game_state.score == 100
        # Games untouched
        assert session.games[0].played == ()

    def test_stamps_start_time_once(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        session = reduce_quiz(session, held("C", "E"), 101.0, generate=generate)
        assert session.game_state.timer == Running(since=101.0)

        session = reduce_quiz(session, held("C", "E", "G"), 102.5, generate=generate)
        assert session.game_state.timer == Running(since=101.0)

    def test_stamps_even_when_seed_wins(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        session = reduce_quiz(session, held("C", "E", "G"), 101.0, generate=generate)
        # A worse chord does not replace the CORRECT one
        session = reduce_quiz(session, held("F", "A", "C"), 102.0, generate=generate)

        assert session.game_state.chord == C
        assert isinstance(session.game_state.timer, Running)

    def test_best_attempt_kept_across_holds(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        session = reduce_quiz(session, held("F#", "A#", "C#"), 101.0, generate=generate)
        assert session.game_state.status == MatchStatus.WRONG

        session = reduce_quiz(session, held("C", "Eb", "G"), 101.5, generate=generate)
        assert session.game_state.status == MatchStatus.PARTIAL

        session = reduce_quiz(session, held("C", "E", "G"), 102.0, generate=generate)
        assert session.game_state.status == MatchStatus.CORRECT

    def test_unrecognized_notes_still_graded(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        session = reduce_quiz(session, held("C", "D"), 101.0, generate=generate)

        assert session.game_state.status == MatchStatus.WRONG
        assert session.game_state.chord is None
        assert session.game_state.score == 6

    def test_no_game_is_a_no_op(self):
        session = Session()
        result = reduce_quiz(session, held("C", "E", "G"), 1.0, generate=FixedGenerator(C))
        assert result is session

    def test_empty_candidate_list_is_a_no_op(self):
        generate = FixedGenerator(C, G)
        session = start(generate)

        result = reduce_quiz(session, held("C", "D", chords=[]), 101.0, generate=generate)

        assert result is session
        assert result.game_state.timer == NotStarted()

    def test_input_not_mutated(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        snapshot = session.model_dump_json()
        reduce_quiz(session, held("C", "E", "G"), 101.0, generate=generate)
        assert session.model_dump_json() == snapshot


class TestBestOf:
    """Tests for the best-of rule."""

    def test_any_chord_beats_no_chord(self):
        best = GameState(status=MatchStatus.CORRECT, chord=None, score=100)
        candidate = GameState(status=MatchStatus.WRONG, chord=G, score=0)
        assert is_better(best, candidate)

    def test_higher_status_wins(self):
        best = GameState(status=MatchStatus.PARTIAL, chord=F, score=50)
        candidate = GameState(status=MatchStatus.ALTERNATE, chord=AM7, score=0)
        assert is_better(best, candidate)
        assert not is_better(candidate, best)

    def test_equal_status_higher_score_wins(self):
        best = GameState(status=MatchStatus.WRONG, chord=F, score=5)
        assert is_better(best, GameState(status=MatchStatus.WRONG, chord=G, score=6))
        assert not is_better(best, GameState(status=MatchStatus.WRONG, chord=G, score=4))

    def test_later_candidate_wins_exact_tie(self):
        best = GameState(status=MatchStatus.WRONG, chord=F, score=5)
        assert is_better(best, GameState(status=MatchStatus.WRONG, chord=G, score=5))

    def test_reduction_picks_highest_with_later_ties(self):
        expected = C
        generate = FixedGenerator(expected, G)
        session = start(generate)
        # Both interpretations of F# A# C# grade WRONG with score 0: the later one wins
        candidates = detect_chords(["F#", "A#", "C#"])
        assert len(candidates) == 2

        session = reduce_quiz(
            session,
            held("F#", "A#", "C#", chords=candidates),
            101.0,
            generate=generate,
        )
        assert session.game_state.status == MatchStatus.WRONG
        assert session.game_state.chord == candidates[-1]

    def test_order_independent_for_distinct_status(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        cm = get_chord("m", "C")
        a = reduce_quiz(session, held("C", "E", "G", chords=[cm, C]), 101.0, generate=generate)
        b = reduce_quiz(session, held("C", "E", "G", chords=[C, cm]), 101.0, generate=generate)
        assert a.game_state.chord == b.game_state.chord == C


class TestNotesReleased:
    """Tests for NotesReleased."""

    def test_spurious_release_resets(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        result = reduce_quiz(session, RELEASED, 101.0, generate=generate)

        assert result.games == session.games
        assert result.game_state.index == 0
        assert result.game_state.status == MatchStatus.NONE
        assert result.game_state.timer == NotStarted()
        assert generate.calls == 1

    def test_records_attempt(self):
        generate = FixedGenerator(C, G, F)
        session = start(generate)
        session = reduce_quiz(session, held("C", "E", "G"), 101.0, generate=generate)
        session = reduce_quiz(session, RELEASED, 103.0, generate=generate)

        game = session.games[0]
        assert game.succeeded == 1
        assert game.score == 100
        assert game.played == (C,)
        assert session.game_state.index == 1
        assert session.game_state.status == MatchStatus.NONE
        assert session.game_state.chord is None
        assert session.game_state.score == 0
        assert session.game_state.elapsed_seconds == 2.0
        assert session.game_state.timer == Running(since=101.0)

    def test_near_miss_not_succeeded(self):
        generate = FixedGenerator(C, G, F)
        session = start(generate)
        session = play(session, generate, "C", "Eb", "G", at=101.0)

        game = session.games[0]
        assert game.succeeded == 0
        assert game.score == 25
        assert game.played == (get_chord("m", "C"),)

    def test_alternate_counts_as_success(self):
        generate = FixedGenerator(get_chord("6", "C"), G, F)
        session = start(generate)
        session = reduce_quiz(
            session, held("A", "C", "E", "G", chords=[AM7]), 101.0, generate=generate
        )
        assert session.game_state.status == MatchStatus.ALTERNATE
        session = reduce_quiz(session, RELEASED, 102.0, generate=generate)

        assert session.games[0].succeeded == 1
        assert session.games[0].score == 75

    def test_unrecognized_notes_recorded_as_none(self):
        generate = FixedGenerator(C, G, F)
        session = start(generate)
        session = play(session, generate, "C", "D", at=101.0)
        assert session.games[0].played == (None,)
        assert session.games[0].score == 6

    def test_time_per_chord(self):
        generate = FixedGenerator(C, G, F, C)
        session = start(generate)
        session = play(session, generate, "C", "E", "G", at=100.0)
        assert session.games[0].time_per_chord_seconds is None

        session = play(session, generate, "G", "B", "D", at=104.0)
        assert session.games[0].time_per_chord_seconds == 4.0

        session = play(session, generate, "F", "A", "C", at=106.0)
        assert session.games[0].time_per_chord_seconds == 3.0

    def test_release_stamps_unstarted_timer(self):
        generate = FixedGenerator(C, G, F)
        session = start(generate)
        # A held state without a running timer (e.g. built by another host)
        state = GameState(status=MatchStatus.CORRECT, chord=C, score=100)
        session = session.model_copy(update={"game_state": state})

        session = reduce_quiz(session, RELEASED, 50.0, generate=generate)
        assert session.game_state.elapsed_seconds == 0.0
        assert session.game_state.timer == Running(since=50.0)

    def test_input_not_mutated(self):
        generate = FixedGenerator(C, G, F)
        session = start(generate)
        session = reduce_quiz(session, held("C", "E", "G"), 101.0, generate=generate)
        snapshot = session.model_dump_json()
        reduce_quiz(session, RELEASED, 102.0, generate=generate)
        assert session.model_dump_json() == snapshot


class TestAdvancement:
    """Tests for look-ahead generation and wraparound."""

    def test_lookahead_only_from_second_to_last(self):
        generate = FixedGenerator(C, G, F, C)
        session = start(generate)

        session = play(session, generate, "C", "E", "G", at=101.0)  # index 0
        assert len(session.games) == 1
        session = play(session, generate, "G", "B", "D", at=102.0)  # index 1
        assert len(session.games) == 1

        session = play(session, generate, "F", "A", "C", at=103.0)  # index 2 == L-2
        assert len(session.games) == 2
        assert session.game_state.timer == Ended()
        assert session.game_state == GameState(
            game_index=0, index=3, timer=Ended(), elapsed_seconds=2.0
        )

    def test_wraparound_on_last_index(self):
        generate = FixedGenerator(C, G, F)
        session = start(generate)
        for at, notes in ((101.0, "CEG"), (102.0, "GBD"), (103.0, "FAC")):
            session = play(session, generate, *notes, at=at)

        assert session.game_state.game_index == 1
        assert session.game_state.index == 0
        assert session.games[0].played == (C, G, F)
        assert session.games[0].completed
        assert session.expected_chord == C

    def test_ended_timer_restamped_on_next_hold(self):
        generate = FixedGenerator(C, G)
        session = start(generate)
        session = play(session, generate, "C", "E", "G", at=101.0)
        assert session.game_state.timer == Ended()

        session = reduce_quiz(session, held("G", "B", "D"), 110.0, generate=generate)
        assert session.game_state.timer == Running(since=110.0)

    def test_missing_follow_on_game_ends_session(self):
        generate = FixedGenerator(C)
        session = start(generate)
        generate.available = False
        session = play(session, generate, "C", "E", "G", at=101.0)

        assert session.game_state.game_index == 1
        assert session.ended
        assert session.expected_chord is None
        assert isinstance(session.game_state.timer, Running)

        # Further input is harmless
        assert reduce_quiz(session, held("C", "E", "G"), 102.0, generate=generate) is session
        released = reduce_quiz(session, RELEASED, 103.0, generate=generate)
        assert released.games == session.games


class TestScenario:
    """Two-chord game, start to follow-on game."""

    def test_two_chord_game(self):
        generate = FixedGenerator(C, G)
        session = start(generate)

        # Hold C major
        session = reduce_quiz(session, held("C", "E", "G"), 10.0, generate=generate)
        assert session.game_state.status == MatchStatus.CORRECT
        assert session.game_state.chord == C

        # Release: success recorded, cursor moves to index 1
        session = reduce_quiz(session, RELEASED, 11.0, generate=generate)
        assert session.games[0].succeeded == 1
        assert session.games[0].score > 0
        assert session.game_state.game_index == 0
        assert session.game_state.index == 1

        # Hold notes matching neither chord
        session = reduce_quiz(session, held("F#", "A#", "C#"), 12.0, generate=generate)
        assert session.game_state.status == MatchStatus.WRONG
        assert session.game_state.chord is not None

        # Release on the last index: new game appended, cursor wraps
        games_before = len(session.games)
        session = reduce_quiz(session, RELEASED, 13.0, generate=generate)
        assert len(session.games) == games_before + 1
        assert session.game_state.game_index == 1
        assert session.game_state.index == 0
        assert session.games[0].succeeded == 1
        assert len(session.games[0].played) == 2


class TestTimePerChord:
    """Tests for the average time helper."""

    def test_first_chord_unavailable(self):
        assert time_per_chord(12.0, 0) is None

    @pytest.mark.parametrize("elapsed,index,expected", [(6.0, 1, 6.0), (6.0, 3, 2.0)])
    def test_average(self, elapsed, index, expected):
        assert time_per_chord(elapsed, index) == expected


class TestUnknownAction:
    def test_rejected(self):
        with pytest.raises(TypeError):
            reduce_quiz(Session(), object(), 1.0)  # type: ignore[arg-type]


def logged(seq: int, event_type: QuizEventType, payload: dict) -> QuizEvent:
    return QuizEvent(
        event_id=f"e{seq:03d}",
        session_id="s1",
        seq=seq,
        ts=datetime.fromtimestamp(100.0 + seq, tz=timezone.utc),
        type=event_type,
        payload=payload,
    )


def by_chord_types(parameters: Parameters) -> Game | None:
    """Generator stub: a C-G game, or nothing when no chord type is enabled."""
    if not parameters.chord_types:
        return None
    return Game(chords=(C, G))


class TestReplay:
    """Tests for folding an event log."""

    def test_parameters_applied(self):
        events = [logged(0, QuizEventType.PARAMETERS_CHANGED, {"parameters": {"game_length": 2}})]
        session, applied = replay_session("s1", events, generate=by_chord_types)

        assert applied is True
        assert session.games[0].chords == (C, G)

    def test_rejected_parameters_reported(self):
        events = [
            logged(0, QuizEventType.PARAMETERS_CHANGED, {"parameters": {"game_length": 2}}),
            logged(1, QuizEventType.NOTES_HELD, {"pitch_classes": ["C", "E", "G"], "chords": [C.model_dump(mode="json")]}),
        ]
        before, _ = replay_session("s1", events, generate=by_chord_types)

        events.append(logged(2, QuizEventType.PARAMETERS_CHANGED, {"parameters": {"chord_types": []}}))
        session, applied = replay_session("s1", events, generate=by_chord_types)

        assert applied is False
        assert session == before

    def test_later_parameters_restore_availability(self):
        events = [
            logged(0, QuizEventType.PARAMETERS_CHANGED, {"parameters": {"chord_types": []}}),
            logged(1, QuizEventType.PARAMETERS_CHANGED, {"parameters": {"game_length": 2}}),
        ]
        _, applied = replay_session("s1", events[:1], generate=by_chord_types)
        assert applied is False

        _, applied = replay_session("s1", events, generate=by_chord_types)
        assert applied is True

    def test_reduce_events_matches_replay(self):
        events = [
            logged(0, QuizEventType.PARAMETERS_CHANGED, {"parameters": {"game_length": 2}}),
            logged(1, QuizEventType.NOTES_HELD, {"pitch_classes": ["C", "E", "G"], "chords": [C.model_dump(mode="json")]}),
        ]
        session = reduce_events("s1", events, generate=by_chord_types)
        replayed, _ = replay_session("s1", events, generate=by_chord_types)

        assert session == replayed
        assert session.game_state.timer == Running(since=101.0)
